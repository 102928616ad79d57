import io
from typing import List, Optional, Sequence

import pytest
import PyPDF2
from PIL import Image
from reportlab.pdfgen import canvas

from pdfworkbench.processors import pdf_codec

PAGE_HEIGHT = 400


def build_pdf(widths: Sequence[int], height: int = PAGE_HEIGHT, blank: Sequence[int] = (),
              password: Optional[str] = None, title: Optional[str] = None) -> bytes:
    """
    A PDF whose page n is ``widths[n - 1]`` points wide, so pages can be told
    apart after they are copied around. Pages listed in ``blank`` (1-based)
    have no content; every other page carries a line of text.
    """
    buffer = io.BytesIO()
    drawing = canvas.Canvas(buffer)
    for number, width in enumerate(widths, start=1):
        drawing.setPageSize((width, height))
        if number not in blank:
            drawing.drawString(20, height / 2, f"Page {number}")
        drawing.showPage()
    drawing.save()

    reader = PyPDF2.PdfReader(io.BytesIO(buffer.getvalue()))
    writer = PyPDF2.PdfWriter()
    for number, page in enumerate(reader.pages, start=1):
        if number in blank:
            writer.add_blank_page(width=widths[number - 1], height=height)
        else:
            writer.add_page(page)
    if title:
        writer.add_metadata({"/Title": title, "/Author": "Test Author"})
    if password:
        writer.encrypt(user_password=password, owner_password=password, use_128bit=True)

    out = io.BytesIO()
    writer.write(out)
    return out.getvalue()


def page_widths(data: bytes, password: Optional[str] = None) -> List[int]:
    reader = PyPDF2.PdfReader(io.BytesIO(data))
    if reader.is_encrypted:
        reader.decrypt(password or "")
    return [int(round(float(page.mediabox.width))) for page in reader.pages]


def fake_render_pages(self, data, dpi, first_page=None, last_page=None, password=None):
    """Stand-in for poppler: one white image per page, sized like the page."""
    widths = page_widths(data, password)
    first = first_page or 1
    last = last_page or len(widths)
    scale = dpi / 72
    return [
        Image.new("RGB", (int(widths[number - 1] * scale), int(PAGE_HEIGHT * scale)), "white")
        for number in range(first, last + 1)
    ]


@pytest.fixture
def make_pdf():
    return build_pdf


@pytest.fixture
def widths_of():
    return page_widths


@pytest.fixture
def fake_renderer(monkeypatch):
    monkeypatch.setattr(pdf_codec.PDFCodec, "render_pages", fake_render_pages)
    return fake_render_pages
