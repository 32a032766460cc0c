"""
Certificate PDF rendering.

Two renderers share the same input:

* the layout renderer fills a downloaded text layout (one line per row,
  ``{placeholder}`` fields) and draws it centred on an A4 landscape page;
* the built-in renderer draws the standard certificate and is used whenever
  the layout path fails for any reason.
"""

from __future__ import annotations

import asyncio
import io
import re
from dataclasses import asdict, dataclass
from typing import Protocol

import httpx
import structlog
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.units import inch
from reportlab.pdfgen import canvas
from src.core.config import get_settings

logger = structlog.get_logger(__name__)

PAGE_WIDTH, PAGE_HEIGHT = landscape(A4)
PRIMARY = colors.HexColor("#1e3a8a")
MUTED = colors.HexColor("#4b5563")
PLACEHOLDER = re.compile(r"\{([^{}]*)\}")


class TemplateRenderError(Exception):
    """Raised when a certificate layout cannot be fetched or filled."""


@dataclass(slots=True)
class CertificateData:
    learner_name: str
    tax_id: str
    program_title: str
    duration: str
    completion_date: str
    final_score: str
    certificate_hash: str
    verification_url: str
    company_name: str


@dataclass(slots=True)
class RenderedCertificate:
    content: bytes
    used_template: bool


class TemplateFetcher(Protocol):
    """Protocol for layout download (allows faking in tests)."""

    async def fetch(self, url: str) -> str:
        ...


class HttpTemplateFetcher:
    """Downloads certificate layouts over HTTP."""

    def __init__(self, timeout_seconds: int | None = None) -> None:
        settings = get_settings()
        self.timeout = (
            timeout_seconds if timeout_seconds is not None else settings.template_timeout_seconds
        )

    async def fetch(self, url: str) -> str:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
                response = await client.get(url)
                response.raise_for_status()
        except httpx.HTTPError as exc:
            raise TemplateRenderError(f"Could not download template: {exc}") from exc
        return response.content.decode("utf-8")


def fill_layout(layout: str, data: CertificateData) -> list[str]:
    """Substitute ``{field}`` placeholders line by line.

    Only bare field names are accepted; unknown names and any attribute or
    index expression inside braces raise ``TemplateRenderError``.
    """
    values = asdict(data)

    def substitute(match: re.Match[str]) -> str:
        name = match.group(1)
        if name not in values:
            raise TemplateRenderError(f"Invalid template placeholder: {{{name}}}")
        return str(values[name])

    return [PLACEHOLDER.sub(substitute, line) for line in layout.splitlines()]


def _draw_border(c: canvas.Canvas) -> None:
    c.setStrokeColor(PRIMARY)
    c.setLineWidth(4)
    margin = 0.5 * inch
    c.rect(margin, margin, PAGE_WIDTH - 2 * margin, PAGE_HEIGHT - 2 * margin)
    c.setLineWidth(1)
    inner = 0.6 * inch
    c.rect(inner, inner, PAGE_WIDTH - 2 * inner, PAGE_HEIGHT - 2 * inner)


def render_layout_pdf(lines: list[str]) -> bytes:
    if not any(line.strip() for line in lines):
        raise TemplateRenderError("Template has no content")

    buffer = io.BytesIO()
    c = canvas.Canvas(buffer, pagesize=landscape(A4))
    _draw_border(c)

    line_height = 0.42 * inch
    y = PAGE_HEIGHT / 2 + (len(lines) - 1) * line_height / 2
    for index, line in enumerate(lines):
        # First line is the heading.
        if index == 0:
            c.setFont("Helvetica-Bold", 28)
            c.setFillColor(PRIMARY)
        else:
            c.setFont("Helvetica", 14)
            c.setFillColor(MUTED)
        c.drawCentredString(PAGE_WIDTH / 2, y, line)
        y -= line_height

    c.showPage()
    c.save()
    return buffer.getvalue()


def render_default_pdf(data: CertificateData) -> bytes:
    """Draw the built-in certificate."""
    buffer = io.BytesIO()
    c = canvas.Canvas(buffer, pagesize=landscape(A4))
    _draw_border(c)
    center = PAGE_WIDTH / 2

    c.setFont("Helvetica-Bold", 36)
    c.setFillColor(PRIMARY)
    c.drawCentredString(center, PAGE_HEIGHT - 1.5 * inch, "Certificate of Completion")

    c.setFont("Helvetica", 14)
    c.setFillColor(MUTED)
    c.drawCentredString(center, PAGE_HEIGHT - 2.3 * inch, "This certifies that")

    c.setFont("Helvetica-Bold", 28)
    c.setFillColor(colors.black)
    c.drawCentredString(center, PAGE_HEIGHT - 2.9 * inch, data.learner_name)

    if data.tax_id:
        c.setFont("Helvetica", 11)
        c.setFillColor(MUTED)
        c.drawCentredString(center, PAGE_HEIGHT - 3.25 * inch, f"Tax ID: {data.tax_id}")

    c.setFont("Helvetica", 14)
    c.drawCentredString(center, PAGE_HEIGHT - 3.8 * inch, "has successfully completed")

    c.setFont("Helvetica-Bold", 20)
    c.setFillColor(PRIMARY)
    c.drawCentredString(center, PAGE_HEIGHT - 4.3 * inch, data.program_title)

    c.setFont("Helvetica", 12)
    c.setFillColor(MUTED)
    details = [f"Completed on {data.completion_date}", f"Final score: {data.final_score}"]
    if data.duration:
        details.append(f"Workload: {data.duration}")
    if data.company_name:
        details.append(data.company_name)
    y = PAGE_HEIGHT - 4.9 * inch
    for detail in details:
        c.drawCentredString(center, y, detail)
        y -= 0.3 * inch

    c.setFont("Courier", 9)
    c.drawCentredString(center, 1.1 * inch, f"Verification code: {data.certificate_hash}")
    c.setFont("Helvetica", 8)
    c.drawCentredString(center, 0.85 * inch, data.verification_url)

    c.showPage()
    c.save()
    return buffer.getvalue()


class CertificateRenderer:
    """Renders a certificate from a layout URL, falling back to the built-in design."""

    def __init__(self, fetcher: TemplateFetcher | None = None) -> None:
        self.fetcher = fetcher or HttpTemplateFetcher()

    async def render(self, data: CertificateData, template_url: str | None) -> RenderedCertificate:
        if template_url:
            try:
                layout = await self.fetcher.fetch(template_url)
                lines = fill_layout(layout, data)
                content = await asyncio.to_thread(render_layout_pdf, lines)
                return RenderedCertificate(content=content, used_template=True)
            except Exception as exc:
                await logger.awarning(
                    "certificate_template_fallback",
                    template_url=template_url,
                    error=str(exc),
                )

        content = await asyncio.to_thread(render_default_pdf, data)
        return RenderedCertificate(content=content, used_template=False)
