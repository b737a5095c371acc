"""Upload normalizers — one function per file type.

Each normalizer takes the raw bytes of an upload and returns its text.
Sync normalizers are run off the event loop by ``extract_text``.
"""

from __future__ import annotations

import asyncio
import inspect
import io
from collections.abc import Iterator
from pathlib import PurePath

from projectbrain.errors import UnsupportedFileType
from projectbrain.models import UploadedFile

_W_NS = {"w": "http://schemas.openxmlformats.org/wordprocessingml/2006/main"}


# ---------------------------------------------------------------------------
# DOCX
# ---------------------------------------------------------------------------

def _runs_text(element) -> str:
    return "".join(t.text or "" for t in element.iterfind(".//w:t", _W_NS))


def normalize_docx(data: bytes) -> str:
    """Paragraphs and table rows of a .docx, in document order."""
    from docx import Document as DocxDocument
    from lxml import etree

    body = DocxDocument(io.BytesIO(data)).element.body
    blocks: list[str] = []
    for child in body:
        kind = etree.QName(child).localname
        if kind == "tbl":
            blocks.extend(
                " | ".join(_runs_text(cell) for cell in row.iterfind(".//w:tc", _W_NS))
                for row in child.iterfind(".//w:tr", _W_NS)
            )
        elif kind == "p" and (text := _runs_text(child)).strip():
            blocks.append(text)
    return "\n\n".join(blocks)


# ---------------------------------------------------------------------------
# PPTX
# ---------------------------------------------------------------------------

def _slide_lines(slide) -> Iterator[str]:
    for shape in slide.shapes:
        if shape.has_text_frame and (text := shape.text_frame.text.strip()):
            yield text
        if shape.has_table:
            for row in shape.table.rows:
                yield " | ".join(cell.text.strip() for cell in row.cells)
    if slide.has_notes_slide:
        frame = slide.notes_slide.notes_text_frame
        if frame is not None and (notes := frame.text.strip()):
            yield f"[Speaker Notes] {notes}"


def normalize_pptx(data: bytes) -> str:
    """One ``--- Slide N ---`` section per slide, speaker notes last."""
    from pptx import Presentation

    slides = Presentation(io.BytesIO(data)).slides
    return "\n\n".join(
        "\n".join([f"--- Slide {n} ---", *_slide_lines(slide)])
        for n, slide in enumerate(slides, 1)
    )


# ---------------------------------------------------------------------------
# PDF
# ---------------------------------------------------------------------------

def normalize_pdf(data: bytes) -> str:
    """Native page text via PyMuPDF. Image-only pages get a placeholder line."""
    import fitz

    pages: list[str] = []
    with fitz.open(stream=data, filetype="pdf") as pdf:
        for n, page in enumerate(pdf, 1):
            text = page.get_text("text").strip()
            if text:
                pages.append(text)
            elif page.get_images():
                pages.append(f"[Page {n}: scanned content, no text layer]")
    return "\n\n".join(pages)


# ---------------------------------------------------------------------------
# Plain text (.txt, .md, .csv, .json, .yaml)
# ---------------------------------------------------------------------------

def normalize_text(data: bytes) -> str:
    return data.decode("utf-8-sig", errors="replace")


# ---------------------------------------------------------------------------
# Images (.png, .jpg, .jpeg, .webp, .heic)
# ---------------------------------------------------------------------------

async def normalize_image(data: bytes) -> str:
    """Vision-model transcription of an image upload."""
    from projectbrain.llm import transcribe_image

    return await transcribe_image(data)


# ---------------------------------------------------------------------------
# Dispatch table
# ---------------------------------------------------------------------------

NORMALIZERS: dict[str, callable] = {
    ".docx": normalize_docx,
    ".pptx": normalize_pptx,
    ".pdf": normalize_pdf,
    ".txt": normalize_text,
    ".md": normalize_text,
    ".csv": normalize_text,
    ".json": normalize_text,
    ".yaml": normalize_text,
    ".yml": normalize_text,
    ".png": normalize_image,
    ".jpg": normalize_image,
    ".jpeg": normalize_image,
    ".webp": normalize_image,
    ".heic": normalize_image,
}


def get_normalizer(file_name: str) -> callable | None:
    """Look up the normalizer for a file name, or None if unsupported."""
    return NORMALIZERS.get(PurePath(file_name).suffix.lower())


async def extract_text(file: UploadedFile) -> str:
    """Return the text of an upload. Raises UnsupportedFileType."""
    normalizer = get_normalizer(file.name)
    if normalizer is None:
        raise UnsupportedFileType(f"Unsupported file type: {file.name}")

    if inspect.iscoroutinefunction(normalizer):
        return await normalizer(file.data)
    # docx, pptx and pdf parsing is CPU-bound; keep the loop free.
    return await asyncio.to_thread(normalizer, file.data)
