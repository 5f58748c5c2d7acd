"""
Pydantic models for email search and report bundling.

Models:
  EmailRecord      — one searched email with the extracted amount/date
  Attachment       — a decoded message attachment (transient)
  SearchRequest    — request body for POST /search
  EmailListRequest — request body for POST /report and POST /export
  SkippedItem      — manifest entry for an email step that failed
"""

from datetime import date, datetime
from typing import Optional
from pydantic import BaseModel, model_validator


class EmailRecord(BaseModel):
    """A single email from search results, with parsed values from its body or PDFs."""

    id: str
    subject: str = ""
    received_at: datetime
    sender: str = ""
    body_text: str = ""

    # Parsed values; None when no extraction strategy matched
    amount: Optional[str] = None
    transaction_date: Optional[str] = None  # DD.MM.YYYY


class Attachment(BaseModel):
    """A single file attachment, already decoded to raw bytes."""

    name: str
    content: bytes          # raw bytes — the store client base64-decodes
    content_type: str = "application/octet-stream"
    content_id: Optional[str] = None
    is_inline: bool = False

    @property
    def is_pdf(self) -> bool:
        return self.name.lower().endswith(".pdf")


class SearchRequest(BaseModel):
    """
    Request body for POST /api/emails/search.

    start_date and end_date are inclusive whole days in UTC.
    subject_filters are OR-ed substring matches; empty means no subject filter.
    """

    start_date: date
    end_date: date
    subject_filters: list[str] = []

    @model_validator(mode="after")
    def _check_range(self) -> "SearchRequest":
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class EmailListRequest(BaseModel):
    """Request body carrying previously searched records back to the server."""

    emails: list[EmailRecord]


class SkippedItem(BaseModel):
    """One step of report bundling that failed for one email."""

    sequence: int
    email_id: str
    stage: str      # "body", "attachments" or "document"
    reason: str
