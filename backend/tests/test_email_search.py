"""
Email search orchestration tests.

The mail store is a small in-memory fake; PDF text extraction is mocked so
attachment "PDFs" can carry their text as plain bytes.
"""

from datetime import date, datetime, timedelta, timezone

import pytest

from taxreport.models.email import Attachment
from taxreport.services.email_search import search_emails, to_utc_range
from taxreport.services.graph_client import GraphApiError


class FakeStore:
    """In-memory MailStore double that records the calls it receives."""

    def __init__(self, messages=None, attachments=None, search_error=None, attachment_errors=None):
        self.messages = messages or []
        self.attachments = attachments or {}
        self.search_error = search_error
        self.attachment_errors = attachment_errors or {}
        self.search_calls = []
        self.attachment_calls = []

    def search_messages(self, start_utc, end_utc, subject_filters=None):
        self.search_calls.append((start_utc, end_utc, subject_filters))
        if self.search_error:
            raise self.search_error
        return self.messages

    def get_full_body(self, message_id):
        return None

    def list_attachments(self, message_id):
        self.attachment_calls.append(message_id)
        if message_id in self.attachment_errors:
            raise self.attachment_errors[message_id]
        return self.attachments.get(message_id, [])


def _message(message_id, body, subject="Ihre Quittung", received="2024-03-05T08:15:00Z"):
    return {
        "id": message_id,
        "subject": subject,
        "received_at": received,
        "sender": "noreply@sbb.ch",
        "body_html": body,
    }


def _pdf(name, text):
    return Attachment(name=name, content=text.encode(), content_type="application/pdf")


@pytest.fixture(autouse=True)
def pdf_text_is_bytes(mocker):
    """Treat attachment bytes as their own extracted text."""
    mocker.patch(
        "taxreport.services.email_search.extract_text_from_pdf_bytes",
        side_effect=lambda data: data.decode(),
    )


# ---------------------------------------------------------------------------
# Date range
# ---------------------------------------------------------------------------

class TestToUtcRange:

    def test_dates_cover_whole_days(self):
        start, end = to_utc_range(date(2024, 1, 1), date(2024, 1, 31))
        assert start == datetime(2024, 1, 1, 0, 0, 0, tzinfo=timezone.utc)
        assert end == datetime(2024, 1, 31, 23, 59, 59, tzinfo=timezone.utc)

    def test_naive_datetime_taken_as_utc(self):
        start, _ = to_utc_range(datetime(2024, 1, 1, 12, 0), date(2024, 1, 2))
        assert start == datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def test_aware_datetime_converted(self):
        zurich_winter = timezone(timedelta(hours=1))
        start, _ = to_utc_range(datetime(2024, 1, 1, 0, 30, tzinfo=zurich_winter), date(2024, 1, 2))
        assert start == datetime(2023, 12, 31, 23, 30, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Orchestration
# ---------------------------------------------------------------------------

class TestSearchEmails:

    def test_passes_range_and_filters_to_store(self):
        store = FakeStore()
        search_emails(store, date(2024, 3, 1), date(2024, 3, 31), ["SBB", "EasyRide"])

        start, end, filters = store.search_calls[0]
        assert start == datetime(2024, 3, 1, tzinfo=timezone.utc)
        assert end == datetime(2024, 3, 31, 23, 59, 59, tzinfo=timezone.utc)
        assert filters == ["SBB", "EasyRide"]

    def test_amount_and_date_from_body(self):
        store = FakeStore(
            messages=[_message("m1", "<p>Datum: 05.03.2024</p><p>Betrag CHF 4.40</p>")]
        )

        records = search_emails(store, date(2024, 3, 1), date(2024, 3, 31))

        assert len(records) == 1
        record = records[0]
        assert record.id == "m1"
        assert record.subject == "Ihre Quittung"
        assert record.sender == "noreply@sbb.ch"
        assert record.received_at == datetime(2024, 3, 5, 8, 15, tzinfo=timezone.utc)
        assert record.body_text.startswith("<p>Datum")
        assert record.amount == "4.40"
        assert record.transaction_date == "05.03.2024"
        # Body had an amount, so attachments were never requested
        assert store.attachment_calls == []

    def test_order_of_store_results_preserved(self):
        store = FakeStore(
            messages=[
                _message("newest", "Total 1.00", received="2024-03-09T08:00:00Z"),
                _message("older", "Total 2.00", received="2024-03-02T08:00:00Z"),
            ]
        )
        records = search_emails(store, date(2024, 3, 1), date(2024, 3, 31))
        assert [r.id for r in records] == ["newest", "older"]

    def test_amount_from_first_pdf_with_amount(self):
        store = FakeStore(
            messages=[_message("m1", "Siehe Anhang")],
            attachments={
                "m1": [
                    _pdf("agb.pdf", "Allgemeine Geschäftsbedingungen"),
                    Attachment(name="bild.png", content=b"Total 999.00", content_type="image/png"),
                    _pdf("quittung.PDF", "Kaufdatum: 18.06.2024 Total 56.00"),
                    _pdf("zweite.pdf", "Total 77.00 Datum 01.01.2020"),
                ]
            },
        )

        record = search_emails(store, date(2024, 6, 1), date(2024, 6, 30))[0]

        assert record.amount == "56.00"
        assert record.transaction_date == "18.06.2024"

    def test_body_date_kept_when_amount_comes_from_pdf(self):
        store = FakeStore(
            messages=[_message("m1", "Datum: 02.02.2024, Beleg im Anhang")],
            attachments={"m1": [_pdf("beleg.pdf", "Datum: 09.09.2024 Total 10.00")]},
        )

        record = search_emails(store, date(2024, 2, 1), date(2024, 2, 29))[0]

        assert record.amount == "10.00"
        assert record.transaction_date == "02.02.2024"

    def test_no_pdf_amount_leaves_fields_unset(self):
        store = FakeStore(
            messages=[_message("m1", "Danke für Ihren Einkauf")],
            attachments={"m1": [_pdf("info.pdf", "Fahrplan 01.05.2024")]},
        )

        record = search_emails(store, date(2024, 5, 1), date(2024, 5, 31))[0]

        assert record.amount is None
        # Date only comes from a PDF that also produced an amount
        assert record.transaction_date is None

    def test_attachment_failure_does_not_abort_batch(self):
        store = FakeStore(
            messages=[
                _message("broken", "kein Betrag"),
                _message("ok", "Betrag CHF 3.00"),
                _message("pdf", "Anhang"),
            ],
            attachments={"pdf": [_pdf("r.pdf", "Total 8.00")]},
            attachment_errors={"broken": GraphApiError(503, "unavailable")},
        )

        records = search_emails(store, date(2024, 3, 1), date(2024, 3, 31))

        assert [r.id for r in records] == ["broken", "ok", "pdf"]
        assert records[0].amount is None
        assert records[1].amount == "3.00"
        assert records[2].amount == "8.00"

    def test_search_failure_is_fatal(self):
        store = FakeStore(search_error=GraphApiError(401, "InvalidAuthenticationToken"))

        with pytest.raises(GraphApiError) as exc_info:
            search_emails(store, date(2024, 3, 1), date(2024, 3, 31))

        assert exc_info.value.status_code == 401

    def test_empty_result(self):
        assert search_emails(FakeStore(), date(2024, 3, 1), date(2024, 3, 31)) == []
