"""
Transaction date extraction.

Looks for Swiss-style DD.MM.YYYY tokens. Labelled dates ("Datum",
"Kaufdatum:") take priority over the first bare date in the text. There is
no calendar validation: "32.13.9999" is returned as found.
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)

DATE = r"(?<!\d)(?P<date>\d{2}\.\d{2}\.\d{4})(?!\d)"


@dataclass(frozen=True)
class DateStrategy:
    name: str
    pattern: re.Pattern

    def __call__(self, text: str) -> Optional[str]:
        match = self.pattern.search(text)
        return match.group("date") if match else None


DATE_STRATEGIES: list[DateStrategy] = [
    # \s* also spans a line break, so the date may sit on the next line
    DateStrategy("datum", re.compile(rf"\bDatum\s*:?\s*{DATE}", re.IGNORECASE)),
    DateStrategy("kaufdatum", re.compile(rf"\bKaufdatum:\s*{DATE}", re.IGNORECASE)),
    DateStrategy("first_date", re.compile(DATE)),
]


def extract_date(text: Optional[str]) -> Optional[str]:
    """
    Return a DD.MM.YYYY date string found in ``text`` or None.

    Examples:
        "Datum: 05.03.2024"                  -> "05.03.2024"
        "Kaufdatum: 12.11.2023"              -> "12.11.2023"
        "random text 01.01.2020 more text"   -> "01.01.2020"
    """
    if not text:
        return None

    for strategy in DATE_STRATEGIES:
        found = strategy(text)
        if found:
            logger.debug("extract_date: %s matched %r", strategy.name, found)
            return found

    return None
