"""
Unit tests for the amount extraction cascade.

Each strategy is tested on its own, then the cascade ordering is checked.
"""

from decimal import Decimal

import pytest
from taxreport.services.amount_extractor import (
    AMOUNT_STRATEGIES,
    extract_amount,
    parse_amount,
)


def _strategy(name):
    return next(s for s in AMOUNT_STRATEGIES if s.name == name)


# ---------------------------------------------------------------------------
# parse_amount
# ---------------------------------------------------------------------------

class TestParseAmount:

    def test_period_decimal(self):
        assert parse_amount("99.50") == Decimal("99.50")

    def test_apostrophe_grouping(self):
        assert parse_amount("1'234.50") == Decimal("1234.50")

    def test_comma_decimal(self):
        assert parse_amount("12,90") == Decimal("12.90")

    def test_two_decimal_points_is_unparsable(self):
        assert parse_amount("1.234.50") is None


# ---------------------------------------------------------------------------
# Individual strategies
# ---------------------------------------------------------------------------

class TestBetragChf:

    def test_basic(self):
        assert _strategy("betrag_chf")("Betrag CHF 123.45") == "123.45"

    def test_colon_and_case(self):
        assert _strategy("betrag_chf")("BETRAG: CHF 8.80") == "8.80"

    def test_verbatim_keeps_grouping(self):
        assert _strategy("betrag_chf")("Betrag CHF 1'200.00") == "1'200.00"

    def test_requires_chf(self):
        assert _strategy("betrag_chf")("Betrag 123.45") is None

    def test_whole_word_only(self):
        assert _strategy("betrag_chf")("Gesamtbetrag CHF 5.00") is None


class TestTotalNumber:

    def test_basic(self):
        assert _strategy("total_number")("Total 809.00") == "809.00"

    def test_no_space(self):
        assert _strategy("total_number")("Total809.00") == "809.00"

    def test_case_insensitive(self):
        assert _strategy("total_number")("TOTAL 12.00") == "12.00"

    def test_apostrophes_stripped(self):
        assert _strategy("total_number")("Total 1'234.50") == "1234.50"

    def test_comma_becomes_period(self):
        assert _strategy("total_number")("Total 12,90") == "12.90"

    def test_does_not_match_chf_prefix(self):
        assert _strategy("total_number")("Total CHF 12.00") is None


class TestTotalChf:

    def test_basic(self):
        assert _strategy("total_chf")("Total CHF 44.00") == "44.00"

    def test_verbatim(self):
        assert _strategy("total_chf")("total chf 1'044,00") == "1'044,00"


class TestSummeInFr:

    def test_summe(self):
        assert _strategy("summe_in_fr")("Summe in Fr. 17.60") == "17.60"

    def test_total_in_fr(self):
        assert _strategy("summe_in_fr")("Total in Fr. 3.00") == "3.00"


class TestLargestChf:

    def test_largest_wins(self):
        assert _strategy("largest_chf")("CHF 10.00 ... CHF 99.50") == "99.50"

    def test_largest_regardless_of_position(self):
        assert _strategy("largest_chf")("CHF 250.00 then CHF 9.00") == "250.00"

    def test_returns_original_formatting(self):
        assert _strategy("largest_chf")("CHF 9.00 CHF 1'250,50") == "1'250,50"

    def test_unparsable_tokens_skipped(self):
        assert _strategy("largest_chf")("CHF 1.234.50 CHF 20.00") == "20.00"

    def test_tie_keeps_first(self):
        assert _strategy("largest_chf")("CHF 5.0 CHF 5.00") == "5.0"

    def test_no_match(self):
        assert _strategy("largest_chf")("EUR 10.00") is None


class TestLargestFr:

    def test_largest_wins(self):
        assert _strategy("largest_fr")("Fr. 3.40 und Fr. 12.00") == "12.00"


# ---------------------------------------------------------------------------
# Cascade
# ---------------------------------------------------------------------------

class TestExtractAmount:

    def test_betrag_chf(self):
        assert extract_amount("Betrag CHF 123.45") == "123.45"

    def test_total_number(self):
        assert extract_amount("Total 809.00") == "809.00"

    def test_largest_chf(self):
        assert extract_amount("CHF 10.00 ... CHF 99.50") == "99.50"

    def test_no_money(self):
        assert extract_amount("no money here") is None

    def test_empty(self):
        assert extract_amount("") is None
        assert extract_amount(None) is None

    def test_betrag_beats_larger_chf(self):
        text = "Betrag CHF 12.00 Zwischensumme CHF 500.00"
        assert extract_amount(text) == "12.00"

    def test_total_number_beats_total_chf(self):
        text = "Total CHF 20.00 Total 15.00"
        assert extract_amount(text) == "15.00"

    def test_total_chf_used_when_no_bare_total(self):
        assert extract_amount("Zwischensumme CHF 90.00 Total CHF 20.00") == "20.00"

    def test_summe_in_fr_beats_chf_scan(self):
        assert extract_amount("Summe in Fr. 7.00 Gutschein CHF 50.00") == "7.00"

    def test_chf_scan_beats_fr_scan(self):
        assert extract_amount("Fr. 80.00 CHF 3.00") == "3.00"

    def test_fr_scan_last(self):
        assert extract_amount("Preis Fr. 4.20, Rabatt Fr. 1.00") == "4.20"

    @pytest.mark.parametrize(
        "text",
        ["Total: ", "CHF", "Betrag CHF", "Fr."],
    )
    def test_labels_without_numbers(self, text):
        assert extract_amount(text) is None

    def test_strategy_order(self):
        assert [s.name for s in AMOUNT_STRATEGIES] == [
            "betrag_chf",
            "total_number",
            "total_chf",
            "summe_in_fr",
            "largest_chf",
            "largest_fr",
        ]
