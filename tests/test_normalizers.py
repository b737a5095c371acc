"""Tests for projectbrain.ingest.normalizers."""

from __future__ import annotations

import io
from unittest.mock import AsyncMock, patch

import pytest

from projectbrain.errors import UnsupportedFileType
from projectbrain.ingest.normalizers import (
    extract_text,
    get_normalizer,
    normalize_docx,
    normalize_pdf,
    normalize_pptx,
    normalize_text,
)
from projectbrain.models import UploadedFile


@pytest.fixture
def docx_bytes():
    """A minimal .docx built with python-docx, with a table between paragraphs."""
    from docx import Document

    doc = Document()
    doc.add_paragraph("First paragraph of the docx.")
    table = doc.add_table(rows=1, cols=2)
    table.cell(0, 0).text = "Milestone"
    table.cell(0, 1).text = "March"
    doc.add_paragraph("Second paragraph of the docx.")
    buf = io.BytesIO()
    doc.save(buf)
    return buf.getvalue()


@pytest.fixture
def pptx_bytes():
    """A minimal .pptx built with python-pptx."""
    from pptx import Presentation

    prs = Presentation()
    slide = prs.slides.add_slide(prs.slide_layouts[1])  # Title and Content
    slide.shapes.title.text = "Slide 1 Title"
    slide.placeholders[1].text = "Slide 1 body text"
    buf = io.BytesIO()
    prs.save(buf)
    return buf.getvalue()


@pytest.fixture
def pdf_bytes():
    """A three-page PDF built with PyMuPDF; the middle page is blank."""
    import fitz

    pdf = fitz.open()
    pdf.new_page().insert_text((72, 72), "Launch date is March 15.")
    pdf.new_page()
    pdf.new_page().insert_text((72, 72), "Budget is 40k.")
    data = pdf.tobytes()
    pdf.close()
    return data


def test_normalize_pdf_keeps_page_order(pdf_bytes):
    assert normalize_pdf(pdf_bytes) == "Launch date is March 15.\n\nBudget is 40k."


@pytest.mark.asyncio
async def test_extract_text_reads_pdf(pdf_bytes):
    text = await extract_text(UploadedFile(name="Roadmap.PDF", data=pdf_bytes))
    assert "March 15" in text


def test_normalize_text_decodes_utf8():
    assert normalize_text("Café plan.\n\nSecond.".encode()) == "Café plan.\n\nSecond."


def test_normalize_docx_keeps_table_order(docx_bytes):
    text = normalize_docx(docx_bytes)
    assert text.index("First paragraph") < text.index("Milestone | March")
    assert text.index("Milestone | March") < text.index("Second paragraph")


def test_normalize_pptx(pptx_bytes):
    text = normalize_pptx(pptx_bytes)
    assert text.startswith("--- Slide 1 ---")
    assert "Slide 1 Title" in text
    assert "body text" in text


def test_get_normalizer_dispatch():
    assert get_normalizer("plan.docx") is normalize_docx
    assert get_normalizer("deck.PPTX") is normalize_pptx
    assert get_normalizer("notes.md") is normalize_text
    assert get_normalizer("photo.png") is not None
    assert get_normalizer("report.pdf") is normalize_pdf
    assert get_normalizer("archive.zip") is None


@pytest.mark.asyncio
async def test_extract_text_dispatches_by_extension(docx_bytes):
    text = await extract_text(UploadedFile(name="plan.docx", data=docx_bytes))
    assert "First paragraph" in text


@pytest.mark.asyncio
async def test_extract_text_rejects_unknown_type():
    with pytest.raises(UnsupportedFileType, match="archive.zip"):
        await extract_text(UploadedFile(name="archive.zip", data=b"PK\x03\x04"))


@pytest.mark.asyncio
async def test_image_upload_is_transcribed():
    with patch("projectbrain.llm.transcribe_image", new_callable=AsyncMock) as mock:
        mock.return_value = "Transcribed content from image"
        text = await extract_text(
            UploadedFile(name="whiteboard.png", data=b"\x89PNG\r\n\x1a\n" + b"\x00" * 100)
        )

    assert text == "Transcribed content from image"
    mock.assert_called_once()
