import asyncio
import logging
from io import BytesIO
from typing import NamedTuple, Optional, Protocol

from pydantic import BaseModel, Field, field_validator
from pypdf import PdfReader, PdfWriter
from pypdf.errors import PyPdfError
from reportlab.pdfbase.pdfmetrics import stringWidth
from reportlab.pdfgen import canvas

from hrsign.common.exceptions import StampingError
from hrsign.config import settings

logger = logging.getLogger(__name__)


class SignaturePosition(BaseModel):
    """Where a signer's box goes, as percentages of the page.

    The origin is the top-left corner. ``page`` is 1-based; -1 means the last
    page and numbers past the end clamp to it.
    """

    page: int = -1
    x_percent: float = Field(ge=0, le=100)
    y_percent: float = Field(ge=0, le=100)
    width_percent: Optional[float] = Field(default=None, gt=0, le=100)
    height_percent: Optional[float] = Field(default=None, gt=0, le=100)

    @field_validator("page")
    @classmethod
    def page_is_one_based_or_last(cls, v: int) -> int:
        if v == 0 or v < -1:
            raise ValueError("page must be 1 or greater, or -1 for the last page")
        return v


class StampDescriptor(BaseModel):
    signer_name: str
    signed_at_label: str
    capture_method: str
    certificate_hash: Optional[str] = None
    position: Optional[SignaturePosition] = None


class Box(NamedTuple):
    x: float
    y: float
    width: float
    height: float


class DocumentStamper(Protocol):
    async def stamp(self, content: bytes, descriptors: list[StampDescriptor]) -> bytes: ...


class PdfStamper:
    """Draws one "digitally signed" box per signer onto a PDF.

    Boxes with a position go exactly there, clamped inside the page. The rest
    start at the bottom right of the last page and stack upward; a stacked box
    that would cross the top margin is skipped rather than drawn off-page.
    """

    box_width = 180.0
    box_height = 60.0
    spacing = 15.0
    margin = 40.0
    base_y = 60.0
    default_width_percent = 30.0
    default_height_percent = 7.0

    def __init__(self, timeout: float):
        self.timeout = timeout

    async def stamp(self, content: bytes, descriptors: list[StampDescriptor]) -> bytes:
        try:
            return await asyncio.wait_for(asyncio.to_thread(self._stamp, content, descriptors), timeout=self.timeout)
        except asyncio.TimeoutError as exc:
            raise StampingError(f"Document stamping timed out after {self.timeout}s") from exc
        except StampingError:
            raise
        except Exception as exc:
            # Malformed page trees surface as arbitrary errors from deep inside pypdf.
            raise StampingError(f"Document stamping failed: {exc}") from exc

    def _place(self, position: SignaturePosition, page_w: float, page_h: float) -> Box:
        width = (position.width_percent or self.default_width_percent) / 100 * page_w
        height = (position.height_percent or self.default_height_percent) / 100 * page_h
        x = position.x_percent / 100 * page_w
        # Percentages count down from the top; PDF user space counts up from the bottom.
        y = page_h - position.y_percent / 100 * page_h - height
        return Box(
            x=max(0.0, min(x, page_w - width)),
            y=max(0.0, min(y, page_h - height)),
            width=width,
            height=height,
        )

    def _draw(self, c: canvas.Canvas, box: Box, stamp: StampDescriptor) -> None:
        c.setFillColorRGB(0.9, 0.95, 1.0)
        c.setStrokeColorRGB(0.2, 0.4, 0.8)
        c.setLineWidth(1)
        c.rect(box.x, box.y, box.width, box.height, stroke=1, fill=1)

        lines = [
            ("Helvetica-Bold", 10, (0.2, 0.4, 0.8), "Digitally signed", box.height - 16),
            ("Helvetica", 8, (0.3, 0.3, 0.3), stamp.signer_name, box.height - 29),
            ("Helvetica", 7, (0.5, 0.5, 0.5), f"{stamp.signed_at_label} ({stamp.capture_method})", 18),
        ]
        if stamp.certificate_hash:
            lines.append(("Helvetica", 6, (0.5, 0.5, 0.5), f"Cert: {stamp.certificate_hash[:24]}", 7))

        for font, size, (r, g, b), text, offset in lines:
            c.setFillColorRGB(r, g, b)
            c.setFont(font, size)
            text_x = box.x + (box.width - stringWidth(text, font, size)) / 2
            c.drawString(text_x, box.y + offset, text)

    def _layout(
        self, descriptors: list[StampDescriptor], sizes: list[tuple[float, float]]
    ) -> dict[int, list[tuple[Box, StampDescriptor]]]:
        """Group boxes by the 0-based page index they land on."""
        last = len(sizes) - 1
        placed: dict[int, list[tuple[Box, StampDescriptor]]] = {}
        stacked = 0

        for stamp in descriptors:
            if stamp.position is not None:
                index = last if stamp.position.page == -1 else min(stamp.position.page - 1, last)
                page_w, page_h = sizes[index]
                placed.setdefault(index, []).append((self._place(stamp.position, page_w, page_h), stamp))
                continue

            page_w, page_h = sizes[last]
            y = self.base_y + stacked * (self.box_height + self.spacing)
            stacked += 1
            if y + self.box_height > page_h - self.margin:
                logger.warning("Stamp %d for %s does not fit on the page, skipping", stacked, stamp.signer_name)
                continue
            x = max(self.margin, page_w - self.box_width - self.margin)
            placed.setdefault(last, []).append((Box(x=x, y=y, width=self.box_width, height=self.box_height), stamp))

        return placed

    def _overlay(self, page_w: float, page_h: float, boxes: list[tuple[Box, StampDescriptor]]) -> bytes:
        buf = BytesIO()
        c = canvas.Canvas(buf, pagesize=(page_w, page_h))
        for box, stamp in boxes:
            self._draw(c, box, stamp)
        c.save()
        return buf.getvalue()

    def _stamp(self, content: bytes, descriptors: list[StampDescriptor]) -> bytes:
        try:
            reader = PdfReader(BytesIO(content))
            page_count = len(reader.pages)
        except (PyPdfError, ValueError) as exc:
            raise StampingError(f"Document is not a stampable PDF: {exc}") from exc
        if not page_count:
            raise StampingError("Document has no pages to stamp")
        if not descriptors:
            return content

        writer = PdfWriter(clone_from=reader)
        sizes = [(float(p.mediabox.width), float(p.mediabox.height)) for p in writer.pages]
        for index, boxes in self._layout(descriptors, sizes).items():
            page_w, page_h = sizes[index]
            overlay = PdfReader(BytesIO(self._overlay(page_w, page_h, boxes))).pages[0]
            writer.pages[index].merge_page(overlay)

        out = BytesIO()
        writer.write(out)
        return out.getvalue()


_stamper = None


def get_stamper() -> DocumentStamper:
    global _stamper
    if _stamper is None:
        _stamper = PdfStamper(timeout=settings.stamping_timeout_seconds)
    return _stamper
