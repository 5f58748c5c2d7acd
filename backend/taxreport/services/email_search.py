"""
Email search orchestration.

Queries the mail store for candidate emails and extracts an amount and a
transaction date for each one. The body is tried first; when it has no
amount, the email's PDF attachments are scanned in listing order.

Public API:
  search_emails(store, start, end, subject_filters=None) -> list[EmailRecord]
"""

import logging
from datetime import date, datetime, time, timezone
from typing import Optional, Union

from taxreport.models.email import EmailRecord
from taxreport.services.amount_extractor import extract_amount
from taxreport.services.date_extractor import extract_date
from taxreport.services.graph_client import MailStore
from taxreport.services.normalizer import normalize_text
from taxreport.services.pdf_extractor import extract_text_from_pdf_bytes

logger = logging.getLogger(__name__)

DateBound = Union[date, datetime]


def to_utc_range(start: DateBound, end: DateBound) -> tuple[datetime, datetime]:
    """
    Convert inclusive bounds to a UTC datetime range.

    Plain dates cover the whole day: start at 00:00:00, end at 23:59:59.
    Naive datetimes are taken as UTC; aware ones are converted.
    """

    def _as_utc(value: DateBound, day_time: time) -> datetime:
        if not isinstance(value, datetime):
            value = datetime.combine(value, day_time)
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    return _as_utc(start, time.min), _as_utc(end, time(23, 59, 59))


def _fill_from_pdf_attachments(store: MailStore, record: EmailRecord) -> None:
    """
    Try each PDF attachment in order until one yields an amount.

    The date is only taken from that same PDF, and only when the body had
    none. Fields already set from the body are never overwritten.
    """
    attachments = store.list_attachments(record.id)
    pdfs = [a for a in attachments if a.is_pdf]

    for pdf in pdfs:
        text = normalize_text(extract_text_from_pdf_bytes(pdf.content))
        amount = extract_amount(text)
        if not amount:
            continue

        record.amount = amount
        if record.transaction_date is None:
            record.transaction_date = extract_date(text)
        logger.info(f"Email {record.id}: amount {amount} found in attachment {pdf.name!r}")
        return


def search_emails(
    store: MailStore,
    start: DateBound,
    end: DateBound,
    subject_filters: Optional[list[str]] = None,
) -> list[EmailRecord]:
    """
    Search emails in [start, end] and extract amount/date for each one.

    Args:
        store:           Mail store bound to the caller's credential.
        start, end:      Inclusive range, compared in UTC.
        subject_filters: Optional substrings; a message matches if its subject
                         contains at least one of them.

    Returns:
        One EmailRecord per message, newest first. Missing amount/date is a
        valid result, not an error.

    Raises:
        GraphApiError: if the initial search call fails. Attachment failures
        for single messages are logged and skipped.
    """
    start_utc, end_utc = to_utc_range(start, end)
    messages = store.search_messages(start_utc, end_utc, subject_filters)
    logger.info(f"Search {start_utc:%Y-%m-%d}..{end_utc:%Y-%m-%d} returned {len(messages)} messages")

    records: list[EmailRecord] = []
    for message in messages:
        body_html = message.get("body_html") or ""
        text = normalize_text(body_html)

        record = EmailRecord(
            id=message["id"],
            subject=message.get("subject") or "",
            received_at=message["received_at"],
            sender=message.get("sender") or "",
            body_text=body_html,
            amount=extract_amount(text),
            transaction_date=extract_date(text),
        )

        if record.amount is None:
            try:
                _fill_from_pdf_attachments(store, record)
            except Exception as e:
                logger.warning(
                    f"Email {record.id}: attachment extraction failed: {e}",
                    exc_info=True,
                )

        records.append(record)

    return records
