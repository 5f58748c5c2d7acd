"""
Email search and report API endpoints.

All endpoints require ``Authorization: Bearer <graph access token>``.

Endpoints:
  GET  /latest-subject   — subject of the newest message (token check)
  POST /search           — search emails, extract amount/date per email
  POST /report           — ZIP bundle of rendered emails + PDF attachments
  POST /export           — CSV / Excel summary of searched emails
"""

import io
import json
import logging
from typing import Callable, Iterator, Literal

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import StreamingResponse

from taxreport.auth import get_access_token
from taxreport.models.email import EmailListRequest, EmailRecord, SearchRequest, SkippedItem
from taxreport.services.email_search import search_emails
from taxreport.services.graph_client import GraphApiError, GraphMailClient
from taxreport.services.renderer import render_html_to_pdf
from taxreport.services.report_bundler import ReportBundleError, build_report_bundle
from taxreport.services.summary_export import export_summary_csv, export_summary_xlsx

router = APIRouter()

logger = logging.getLogger(__name__)

_XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

# Keeps the X-Skipped-Items header well under common proxy header limits
_MAX_SKIPPED_REASON_LENGTH = 200


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------

def get_mail_store(access_token: str = Depends(get_access_token)) -> Iterator[GraphMailClient]:
    """One Graph client per request, closed when the response is done."""
    with GraphMailClient(access_token) as store:
        yield store


def get_renderer() -> Callable[[str], bytes]:
    return render_html_to_pdf


def _graph_http_exception(exc: GraphApiError) -> HTTPException:
    """
    Translate a Graph failure into the API's error response.

    401/403 from Graph mean the caller's token is bad or lacks Mail.Read, so
    they are reported as 401. Anything else is an upstream failure (502).
    """
    status = 401 if exc.is_auth_error else 502
    return HTTPException(
        status_code=status,
        detail={
            "message": "Mail service request failed",
            "graph_status": exc.status_code,
            "graph_error": exc.body,
        },
    )


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.get("/latest-subject")
def latest_subject(store: GraphMailClient = Depends(get_mail_store)):
    """Return the subject of the newest message; useful to check a token."""
    try:
        subject = store.get_latest_subject()
    except GraphApiError as e:
        logger.error(f"Latest subject lookup failed: {e}")
        raise _graph_http_exception(e)
    return {"subject": subject}


@router.post("/search", response_model=list[EmailRecord])
def search(
    request: SearchRequest,
    store: GraphMailClient = Depends(get_mail_store),
):
    """
    Search emails received between start_date and end_date (inclusive, UTC).

    Subject filters are OR-ed. At most 100 emails are returned, newest first.
    Each result carries the amount and transaction date found in the body or,
    failing that, in its first PDF attachment with an amount.
    """
    try:
        return search_emails(
            store,
            request.start_date,
            request.end_date,
            request.subject_filters,
        )
    except GraphApiError as e:
        logger.error(f"Email search failed: {e}")
        raise _graph_http_exception(e)


def _skipped_manifest_entry(item: SkippedItem) -> dict:
    entry = item.model_dump()
    if len(item.reason) > _MAX_SKIPPED_REASON_LENGTH:
        entry["reason"] = item.reason[: _MAX_SKIPPED_REASON_LENGTH - 3] + "..."
    return entry


@router.post("/report")
def report(
    request: EmailListRequest,
    store: GraphMailClient = Depends(get_mail_store),
    render: Callable[[str], bytes] = Depends(get_renderer),
) -> StreamingResponse:
    """
    Download a ZIP with one rendered PDF per email plus its PDF attachments.

    Emails that could not be processed are left out; the X-Skipped-Items
    response header lists them as JSON.
    """
    try:
        bundle = build_report_bundle(store, request.emails, render=render)
    except ReportBundleError as e:
        logger.error(f"Report bundle failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to build report: {e}")

    skipped = json.dumps([_skipped_manifest_entry(item) for item in bundle.skipped])

    return StreamingResponse(
        io.BytesIO(bundle.content),
        media_type="application/zip",
        headers={
            "Content-Disposition": 'attachment; filename="email_report.zip"',
            "X-Skipped-Items": skipped,
        },
    )


@router.post("/export", dependencies=[Depends(get_access_token)])
def export(
    request: EmailListRequest,
    file_format: Literal["csv", "xlsx"] = Query(default="csv", alias="format"),
) -> StreamingResponse:
    """Download a summary table of the given emails as CSV or Excel."""
    try:
        if file_format == "xlsx":
            content = export_summary_xlsx(request.emails)
            media_type = _XLSX_MEDIA_TYPE
        else:
            content = export_summary_csv(request.emails)
            media_type = "text/csv; charset=utf-8"
    except Exception as e:
        logger.error(f"Summary export failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to generate summary export")

    return StreamingResponse(
        io.BytesIO(content),
        media_type=media_type,
        headers={
            "Content-Disposition": f'attachment; filename="email_summary.{file_format}"',
        },
    )
