"""
Report bundle generation.

Builds one ZIP archive for a list of searched emails. Each email becomes a
rendered PDF (header block + original body, inline images embedded) and its
original PDF attachments are added next to it unchanged.

Archive layout, in input order:
  001_<safe subject>.pdf
  001_01_<attachment name>
  001_02_<attachment name>
  002_<safe subject>.pdf
  ...

A failure while processing one email is logged, recorded in the bundle's
skipped manifest, and does not stop the others. Sequence numbers are tied to
the input position, so a skipped email leaves a gap rather than shifting
later entries.

Public API:
  build_report_bundle(store, records, render=render_html_to_pdf) -> ReportBundle
"""

import base64
import html
import io
import logging
import re
import zipfile
from dataclasses import dataclass, field
from datetime import timezone
from typing import Callable, Optional
from zoneinfo import ZoneInfo

from taxreport import settings
from taxreport.models.email import Attachment, EmailRecord, SkippedItem
from taxreport.services.graph_client import MailStore
from taxreport.services.renderer import render_html_to_pdf

logger = logging.getLogger(__name__)

MAX_BASE_NAME_LENGTH = 50
FALLBACK_BASE_NAME = "Email"

_CID_SRC_RE = re.compile(r"""(src\s*=\s*["'])cid:([^"']+)(["'])""", re.IGNORECASE)
_BODY_RE = re.compile(r"<body[^>]*>(.*)</body>", re.IGNORECASE | re.DOTALL)
_INVALID_FILENAME_CHARS_RE = re.compile(r'[\\/:*?"<>|\x00-\x1f]')

# Print-oriented stylesheet; xhtml2pdf understands this CSS subset
_STYLESHEET = """
@page { size: a4 portrait; margin: 1.5cm; }
body { font-family: Helvetica, Arial, sans-serif; font-size: 10pt; color: #222222; }
.email-header { border-bottom: 1px solid #999999; padding-bottom: 6pt; margin-bottom: 12pt; }
.email-header h1 { font-size: 14pt; margin: 0 0 6pt 0; }
.email-header table { width: 100%; }
.email-header td.label { width: 3.5cm; font-weight: bold; }
.email-body img { max-width: 100%; }
"""


class ReportBundleError(Exception):
    """The archive itself could not be produced."""


@dataclass
class ReportBundle:
    """The finished ZIP plus what went into it and what was skipped."""

    content: bytes
    entries: list[str] = field(default_factory=list)
    skipped: list[SkippedItem] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _normalize_content_id(value: str) -> str:
    return value.strip().strip("<>").strip().lower()


def resolve_inline_images(body_html: str, attachments: list[Attachment]) -> str:
    """
    Replace ``src="cid:..."`` references with base64 data URIs.

    The content-id lookup table is built first, then the body is rewritten in
    one pass. References without a matching attachment are left unchanged.
    """
    data_uris: dict[str, str] = {}
    for attachment in attachments:
        if not attachment.content_id:
            continue
        encoded = base64.b64encode(attachment.content).decode("ascii")
        key = _normalize_content_id(attachment.content_id)
        data_uris[key] = f"data:{attachment.content_type};base64,{encoded}"

    if not data_uris:
        return body_html

    def _substitute(match: re.Match) -> str:
        uri = data_uris.get(_normalize_content_id(match.group(2)))
        if uri is None:
            return match.group(0)
        return f"{match.group(1)}{uri}{match.group(3)}"

    return _CID_SRC_RE.sub(_substitute, body_html)


def format_received_at(record: EmailRecord) -> str:
    """Received time as DD.MM.YYYY HH:mm in the report timezone."""
    received = record.received_at
    if received.tzinfo is None:
        received = received.replace(tzinfo=timezone.utc)
    return received.astimezone(ZoneInfo(settings.REPORT_TIMEZONE)).strftime("%d.%m.%Y %H:%M")


def _body_fragment(body_html: str) -> str:
    """Return the inner <body> markup when given a full HTML document."""
    match = _BODY_RE.search(body_html)
    return match.group(1) if match else body_html


def compose_html_document(record: EmailRecord, body_html: str) -> str:
    """Build the self-contained HTML page that is rendered for one email."""
    rows = [
        ("Von", record.sender),
        ("Empfangen", format_received_at(record)),
    ]
    if record.transaction_date:
        rows.append(("Datum", record.transaction_date))
    if record.amount:
        rows.append(("Betrag", f"CHF {record.amount}"))

    header_rows = "\n".join(
        f'<tr><td class="label">{html.escape(label)}</td><td>{html.escape(value)}</td></tr>'
        for label, value in rows
    )

    return (
        "<!DOCTYPE html>\n"
        '<html><head><meta charset="utf-8">'
        f"<title>{html.escape(record.subject)}</title>"
        f"<style>{_STYLESHEET}</style></head>\n"
        "<body>\n"
        '<div class="email-header">\n'
        f"<h1>{html.escape(record.subject)}</h1>\n"
        f"<table>\n{header_rows}\n</table>\n"
        "</div>\n"
        f'<div class="email-body">\n{_body_fragment(body_html)}\n</div>\n'
        "</body></html>\n"
    )


def safe_base_name(subject: Optional[str]) -> str:
    """
    Derive a filesystem-safe base name from an email subject.

    Characters invalid in Windows/Unix filenames are removed and the result is
    cut to 50 characters.

    Examples:
        "Ihre Quittung: Zürich HB"  -> "Ihre Quittung Zürich HB"
        ""                          -> "Email"
    """
    if not subject:
        return FALLBACK_BASE_NAME
    cleaned = _INVALID_FILENAME_CHARS_RE.sub("", subject).strip()
    cleaned = cleaned[:MAX_BASE_NAME_LENGTH].strip()
    return cleaned or FALLBACK_BASE_NAME


def _attachment_entry_name(name: str) -> str:
    # Keep the original name but never let it create directories in the archive
    return name.replace("/", "_").replace("\\", "_")


# ---------------------------------------------------------------------------
# Per-email processing
# ---------------------------------------------------------------------------

def _fetch_body(
    store: MailStore,
    record: EmailRecord,
    sequence: int,
    skipped: list[SkippedItem],
) -> str:
    """Full body from the store, falling back to the body captured at search time."""
    try:
        body = store.get_full_body(record.id)
    except Exception as e:
        logger.warning(f"Email {sequence:03d} ({record.id}): body fetch failed: {e}")
        skipped.append(SkippedItem(sequence=sequence, email_id=record.id, stage="body", reason=str(e)))
        body = None
    return body or record.body_text


def _fetch_attachments(
    store: MailStore,
    record: EmailRecord,
    sequence: int,
    skipped: list[SkippedItem],
) -> list[Attachment]:
    try:
        return store.list_attachments(record.id)
    except Exception as e:
        logger.warning(f"Email {sequence:03d} ({record.id}): attachment fetch failed: {e}")
        skipped.append(
            SkippedItem(sequence=sequence, email_id=record.id, stage="attachments", reason=str(e))
        )
        return []


def _add_email(
    archive: zipfile.ZipFile,
    store: MailStore,
    record: EmailRecord,
    sequence: int,
    render: Callable[[str], bytes],
    skipped: list[SkippedItem],
) -> list[str]:
    """Write one email's rendered PDF and PDF attachments; return the entry names."""
    body_html = _fetch_body(store, record, sequence, skipped)
    attachments = _fetch_attachments(store, record, sequence, skipped)

    document = compose_html_document(record, resolve_inline_images(body_html, attachments))
    pdf_bytes = render(document)

    entries = [f"{sequence:03d}_{safe_base_name(record.subject)}.pdf"]
    archive.writestr(entries[0], pdf_bytes)

    pdf_attachments = [a for a in attachments if a.is_pdf]
    for index, attachment in enumerate(pdf_attachments, start=1):
        name = f"{sequence:03d}_{index:02d}_{_attachment_entry_name(attachment.name)}"
        archive.writestr(name, attachment.content)
        entries.append(name)

    return entries


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def build_report_bundle(
    store: MailStore,
    records: list[EmailRecord],
    render: Callable[[str], bytes] = render_html_to_pdf,
) -> ReportBundle:
    """
    Build the ZIP report bundle for ``records``, in list order.

    Args:
        store:   Mail store bound to the caller's credential.
        records: Emails as returned by search_emails().
        render:  HTML -> PDF renderer.

    Returns:
        ReportBundle with the archive bytes, entry names, and skipped manifest.

    Raises:
        ReportBundleError: if the archive cannot be created or finalized.
    """
    buf = io.BytesIO()
    try:
        archive = zipfile.ZipFile(buf, mode="w", compression=zipfile.ZIP_DEFLATED)
    except Exception as e:
        raise ReportBundleError(f"Failed to create report archive: {e}") from e

    bundle = ReportBundle(content=b"")

    try:
        for sequence, record in enumerate(records, start=1):
            try:
                bundle.entries.extend(
                    _add_email(archive, store, record, sequence, render, bundle.skipped)
                )
            except Exception as e:
                logger.error(
                    f"Email {sequence:03d} ({record.id}) skipped: {e}",
                    exc_info=True,
                )
                bundle.skipped.append(
                    SkippedItem(sequence=sequence, email_id=record.id, stage="document", reason=str(e))
                )
    finally:
        try:
            archive.close()
        except Exception as e:
            raise ReportBundleError(f"Failed to finalize report archive: {e}") from e

    bundle.content = buf.getvalue()
    logger.info(
        f"Report bundle: {len(records)} emails, {len(bundle.entries)} entries, "
        f"{len(bundle.skipped)} skipped steps"
    )
    return bundle
