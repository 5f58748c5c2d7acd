"""
HTML to PDF rendering.

Wraps xhtml2pdf so the report bundler only depends on a plain
``render(html) -> bytes`` callable and tests can swap in a fake.
"""

import io
import logging

from xhtml2pdf import pisa

logger = logging.getLogger(__name__)


class RenderError(Exception):
    """The HTML document could not be converted to PDF."""


def render_html_to_pdf(html_document: str) -> bytes:
    """
    Render a self-contained HTML document to PDF bytes.

    Images must already be embedded as data URIs; no network fetches are made.

    Raises:
        RenderError: if xhtml2pdf reports errors.
    """
    buf = io.BytesIO()
    result = pisa.CreatePDF(src=html_document, dest=buf, encoding="utf-8")
    if result.err:
        raise RenderError(f"xhtml2pdf reported {result.err} error(s)")
    return buf.getvalue()
