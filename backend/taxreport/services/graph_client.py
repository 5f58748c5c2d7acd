"""
Microsoft Graph mail client.

Thin synchronous wrapper over the Graph ``/me/messages`` endpoints. Only this
module knows Graph's JSON shapes; everything else works with the plain
message dicts and Attachment models it returns.

Message dicts returned by search_messages():
  id            str   — Graph message id
  subject       str
  received_at   str   — ISO 8601 timestamp (UTC)
  sender        str   — sender email address
  body_html     str   — body content (HTML when Graph has it)

Transient failures (connection errors, timeouts, HTTP 429 and 5xx) are
retried with exponential backoff via tenacity. Everything else surfaces as
GraphApiError with the response status and body attached.
"""

import base64
import logging
from datetime import datetime
from typing import Optional, Protocol
from urllib.parse import quote

import httpx
from tenacity import Retrying, retry_if_exception, stop_after_attempt, wait_exponential

from taxreport import settings
from taxreport.models.email import Attachment

logger = logging.getLogger(__name__)

_MESSAGE_FIELDS = "id,subject,receivedDateTime,from,body"
_TRANSIENT_STATUS_CODES = {429, 500, 502, 503, 504}


class GraphApiError(Exception):
    """
    A Graph request failed.

    status_code is None when no HTTP response was received (DNS failure,
    connection refused, timeout after all retries).
    """

    def __init__(self, status_code: Optional[int], body: str, url: str = ""):
        self.status_code = status_code
        self.body = body
        self.url = url
        status = status_code if status_code is not None else "no response"
        super().__init__(f"Graph API returned {status}: {body}")

    @property
    def is_auth_error(self) -> bool:
        return self.status_code in (401, 403)


class MailStore(Protocol):
    """The operations the search orchestrator and report bundler need."""

    def search_messages(
        self,
        start_utc: datetime,
        end_utc: datetime,
        subject_filters: Optional[list[str]] = None,
    ) -> list[dict]: ...

    def get_full_body(self, message_id: str) -> Optional[str]: ...

    def list_attachments(self, message_id: str) -> list[Attachment]: ...


def _is_transient(exc: BaseException) -> bool:
    if isinstance(exc, httpx.TransportError):
        return True
    return isinstance(exc, GraphApiError) and exc.status_code in _TRANSIENT_STATUS_CODES


def _odata_datetime(value: datetime) -> str:
    return value.strftime("%Y-%m-%dT%H:%M:%SZ")


def _odata_string(value: str) -> str:
    """Quote a literal for an OData $filter (single quotes are doubled)."""
    return "'" + value.replace("'", "''") + "'"


def build_search_filter(
    start_utc: datetime,
    end_utc: datetime,
    subject_filters: Optional[list[str]] = None,
) -> str:
    """
    Build the OData $filter for a received-time range and subject substrings.

    Example:
        receivedDateTime ge 2024-01-01T00:00:00Z and
        receivedDateTime le 2024-01-31T23:59:59Z and
        (contains(subject,'SBB') or contains(subject,'EasyRide'))
    """
    clauses = [
        f"receivedDateTime ge {_odata_datetime(start_utc)}",
        f"receivedDateTime le {_odata_datetime(end_utc)}",
    ]

    subjects = [s.strip() for s in subject_filters or [] if s and s.strip()]
    if subjects:
        ors = " or ".join(f"contains(subject,{_odata_string(s)})" for s in subjects)
        clauses.append(f"({ors})")

    return " and ".join(clauses)


def _normalize_message(payload: dict) -> dict:
    """Map a Graph message resource to the store's plain message dict."""
    sender = ((payload.get("from") or {}).get("emailAddress") or {}).get("address") or ""
    body = payload.get("body") or {}
    return {
        "id": payload.get("id", ""),
        "subject": payload.get("subject") or "",
        "received_at": payload.get("receivedDateTime"),
        "sender": sender,
        "body_html": body.get("content") or "",
    }


def _normalize_attachment(payload: dict) -> Optional[Attachment]:
    """
    Convert a Graph fileAttachment to an Attachment.

    Item and reference attachments carry no contentBytes and are skipped.
    """
    raw = payload.get("contentBytes")
    if raw is None:
        return None
    try:
        content = base64.b64decode(raw)
    except Exception:
        logger.warning(f"Attachment {payload.get('name')!r} has invalid base64 content")
        content = b""
    return Attachment(
        name=payload.get("name") or "attachment",
        content=content,
        content_type=payload.get("contentType") or "application/octet-stream",
        content_id=payload.get("contentId"),
        is_inline=bool(payload.get("isInline")),
    )


class GraphMailClient:
    """
    Mail store backed by Microsoft Graph, bound to one access token.

    Usage:
        with GraphMailClient(token) as store:
            messages = store.search_messages(start, end, ["SBB"])
    """

    def __init__(
        self,
        access_token: str,
        base_url: str = settings.GRAPH_BASE_URL,
        timeout: float = settings.GRAPH_TIMEOUT_SECONDS,
        max_attempts: int = settings.GRAPH_MAX_ATTEMPTS,
        retry_wait_seconds: float = 0.5,
        http_client: Optional[httpx.Client] = None,
    ):
        if not access_token or not access_token.strip():
            raise ValueError("access_token is required")

        self.base_url = base_url.rstrip("/")
        self.max_attempts = max(1, max_attempts)
        self.retry_wait_seconds = retry_wait_seconds
        self._owns_client = http_client is None
        self._client = http_client or httpx.Client(timeout=timeout)
        self._headers = {
            "Authorization": f"Bearer {access_token}",
            "Accept": "application/json",
            "Prefer": 'outlook.body-content-type="html"',
        }

    def __enter__(self) -> "GraphMailClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _get_once(self, url: str, params: Optional[dict]) -> dict:
        response = self._client.get(url, params=params, headers=self._headers)
        if response.status_code >= 400:
            logger.warning(f"Graph GET {url} failed with {response.status_code}")
            raise GraphApiError(response.status_code, response.text, url)
        try:
            return response.json()
        except ValueError:
            logger.warning(f"Graph GET {url} returned a non-JSON body")
            raise GraphApiError(response.status_code, response.text, url)

    def _get(self, path: str, params: Optional[dict] = None) -> dict:
        url = f"{self.base_url}{path}"
        retrying = Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.retry_wait_seconds, max=8),
            retry=retry_if_exception(_is_transient),
            reraise=True,
        )
        try:
            return retrying(self._get_once, url, params)
        except httpx.TransportError as e:
            raise GraphApiError(None, str(e), url) from e

    # ------------------------------------------------------------------
    # Store operations
    # ------------------------------------------------------------------

    def search_messages(
        self,
        start_utc: datetime,
        end_utc: datetime,
        subject_filters: Optional[list[str]] = None,
    ) -> list[dict]:
        """
        Return messages received in [start_utc, end_utc], newest first.

        Capped at SEARCH_PAGE_SIZE; further pages are not requested.
        """
        params = {
            "$filter": build_search_filter(start_utc, end_utc, subject_filters),
            "$orderby": "receivedDateTime desc",
            "$top": str(settings.SEARCH_PAGE_SIZE),
            "$select": _MESSAGE_FIELDS,
        }
        data = self._get("/me/messages", params)
        messages = [_normalize_message(m) for m in data.get("value") or []]

        if data.get("@odata.nextLink"):
            logger.info(
                f"Search returned more than {settings.SEARCH_PAGE_SIZE} messages; "
                "only the first page is used"
            )
        return messages

    def get_full_body(self, message_id: str) -> Optional[str]:
        """Return the message's HTML body, or None when it has none."""
        data = self._get(f"/me/messages/{quote(message_id, safe='')}", {"$select": "body"})
        body = data.get("body") or {}
        return body.get("content") or None

    def list_attachments(self, message_id: str) -> list[Attachment]:
        """Return the message's file attachments in Graph's listing order."""
        data = self._get(f"/me/messages/{quote(message_id, safe='')}/attachments")
        attachments = []
        for item in data.get("value") or []:
            attachment = _normalize_attachment(item)
            if attachment is not None:
                attachments.append(attachment)
        return attachments

    def get_latest_subject(self) -> Optional[str]:
        """Return the subject of the most recent message (token smoke check)."""
        data = self._get(
            "/me/messages",
            {"$select": "subject", "$orderby": "receivedDateTime desc", "$top": "1"},
        )
        messages = data.get("value") or []
        if not messages:
            return None
        return messages[0].get("subject")
