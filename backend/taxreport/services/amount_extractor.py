"""
Amount extraction from normalized email or PDF text.

Strategies are evaluated in a fixed priority order; the first one that
matches wins. The two scan-all strategies ("CHF <n>" and "Fr. <n>") look at
every occurrence and keep the largest value.

Public API:
  extract_amount(text) -> Optional[str]
  AMOUNT_STRATEGIES    — the ordered cascade, exposed for per-strategy tests
"""

import logging
import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Callable, Optional

logger = logging.getLogger(__name__)

# Digits, then greedily any run of separator + digits: 809.00, 1'234.50, 12,90
NUMBER = r"\d+(?:[.,']\d+)*"


def _verbatim(token: str) -> str:
    return token.strip()


def _strip_grouping(token: str) -> str:
    """Drop apostrophe grouping and turn a comma decimal into a period."""
    return token.strip().replace("'", "").replace(",", ".")


def parse_amount(token: str) -> Optional[Decimal]:
    """
    Parse a Swiss-formatted number into a Decimal.

    Examples:
        "99.50"     -> Decimal("99.50")
        "1'234,50"  -> Decimal("1234.50")
        "1.234.50"  -> None  (more than one decimal point)
    """
    try:
        return Decimal(_strip_grouping(token))
    except InvalidOperation:
        logger.debug("parse_amount: could not parse %r", token)
        return None


@dataclass(frozen=True)
class AmountStrategy:
    """
    One step of the amount cascade.

    mode "first" returns the first match passed through ``normalize``.
    mode "max" scans every match and returns the one with the largest parsed
    value, in its original form.
    """

    name: str
    pattern: re.Pattern
    mode: str = "first"
    normalize: Callable[[str], str] = _verbatim

    def __call__(self, text: str) -> Optional[str]:
        if self.mode == "max":
            return self._largest(text)

        match = self.pattern.search(text)
        if not match:
            return None
        return self.normalize(match.group("amount"))

    def _largest(self, text: str) -> Optional[str]:
        best_token: Optional[str] = None
        best_value: Optional[Decimal] = None

        for match in self.pattern.finditer(text):
            token = match.group("amount").strip()
            value = parse_amount(token)
            if value is None:
                continue
            if best_value is None or value > best_value:
                best_token, best_value = token, value

        return best_token


def _compile(pattern: str) -> re.Pattern:
    return re.compile(pattern, re.IGNORECASE)


AMOUNT_STRATEGIES: list[AmountStrategy] = [
    AmountStrategy(
        name="betrag_chf",
        pattern=_compile(rf"\bBetrag\s*:?\s*CHF\s*(?P<amount>{NUMBER})"),
    ),
    AmountStrategy(
        name="total_number",
        pattern=_compile(rf"\bTotal\s*:?\s*(?P<amount>{NUMBER})"),
        normalize=_strip_grouping,
    ),
    AmountStrategy(
        name="total_chf",
        pattern=_compile(rf"\bTotal\s*:?\s*CHF\s*(?P<amount>{NUMBER})"),
    ),
    AmountStrategy(
        name="summe_in_fr",
        pattern=_compile(rf"\b(?:Summe|Total) in Fr\.\s*:?\s*(?P<amount>{NUMBER})"),
    ),
    AmountStrategy(
        name="largest_chf",
        pattern=_compile(rf"\bCHF\s*(?P<amount>{NUMBER})"),
        mode="max",
    ),
    AmountStrategy(
        name="largest_fr",
        pattern=_compile(rf"\bFr\.\s*(?P<amount>{NUMBER})"),
        mode="max",
    ),
]


def extract_amount(text: Optional[str]) -> Optional[str]:
    """
    Return the best-matching monetary value in ``text`` or None.

    ``text`` should already be normalized (see normalizer.normalize_text).

    Examples:
        "Betrag CHF 123.45"        -> "123.45"
        "Total 809.00"             -> "809.00"
        "CHF 10.00 ... CHF 99.50"  -> "99.50"
        "no money here"            -> None
    """
    if not text:
        return None

    for strategy in AMOUNT_STRATEGIES:
        amount = strategy(text)
        if amount:
            logger.debug("extract_amount: %s matched %r", strategy.name, amount)
            return amount

    return None
