"""Best-effort plain-text extraction from uploaded meeting documents."""

from __future__ import annotations

import io
import logging
import re
import zipfile
from collections.abc import Callable
from xml.etree import ElementTree

import fitz  # PyMuPDF

from app.services.screening.errors import DocumentExtractionError

logger = logging.getLogger(__name__)

PDF_TYPE = "application/pdf"
DOCX_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
PPTX_TYPE = "application/vnd.openxmlformats-officedocument.presentationml.presentation"
XLSX_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

_TAG = re.compile(r"<[^>]+>")
_WHITESPACE = re.compile(r"\s+")
_PART_NUMBER = re.compile(r"(\d+)\.xml$")
_SHEET_NS = "{http://schemas.openxmlformats.org/spreadsheetml/2006/main}"


def extract_text(data: bytes, content_type: str, file_name: str) -> str:
    """Dispatch on MIME type or extension; unknown types are decoded as UTF-8 text.

    Raises ``DocumentExtractionError`` when a recognised container is corrupt.
    """
    extractor = _select_extractor((content_type or "").lower(), (file_name or "").lower())
    try:
        text = extractor(data)
    except DocumentExtractionError:
        raise
    except (fitz.FileDataError, zipfile.BadZipFile, ElementTree.ParseError, KeyError, IndexError, ValueError) as exc:
        logger.warning(
            "documents.extraction_failed",
            extra={"file_name": file_name, "content_type": content_type, "error": type(exc).__name__},
        )
        raise DocumentExtractionError(f"Failed to extract text from {file_name}: {exc}") from exc
    logger.info("documents.extracted", extra={"file_name": file_name, "chars": len(text)})
    return text


def _select_extractor(content_type: str, file_name: str) -> Callable[[bytes], str]:
    if content_type == PDF_TYPE or file_name.endswith(".pdf"):
        return _extract_pdf
    if content_type == DOCX_TYPE or file_name.endswith(".docx"):
        return _extract_docx
    if content_type == PPTX_TYPE or file_name.endswith(".pptx"):
        return _extract_pptx
    if content_type == XLSX_TYPE or file_name.endswith(".xlsx"):
        return _extract_xlsx
    return _decode_text


def _decode_text(data: bytes) -> str:
    return data.decode("utf-8", errors="replace")


def _extract_pdf(data: bytes) -> str:
    with fitz.open(stream=data, filetype="pdf") as document:
        pages = [page.get_text() for page in document]
    return "\n".join(page.strip() for page in pages if page.strip())


def _strip_xml(xml: str) -> str:
    return _WHITESPACE.sub(" ", _TAG.sub(" ", xml)).strip()


def _part_number(name: str) -> int:
    match = _PART_NUMBER.search(name)
    return int(match.group(1)) if match else 0


def _numbered_parts(archive: zipfile.ZipFile, prefix: str) -> list[str]:
    names = [
        name for name in archive.namelist() if name.startswith(prefix) and name.endswith(".xml")
    ]
    return sorted(names, key=_part_number)


def _extract_docx(data: bytes) -> str:
    with zipfile.ZipFile(io.BytesIO(data)) as archive:
        xml = archive.read("word/document.xml").decode("utf-8")
    paragraphs = re.split(r"</w:p>", xml)
    lines = [_strip_xml(paragraph) for paragraph in paragraphs]
    return "\n".join(line for line in lines if line)


def _extract_pptx(data: bytes) -> str:
    sections: list[str] = []
    with zipfile.ZipFile(io.BytesIO(data)) as archive:
        notes = {
            _part_number(name): _strip_xml(archive.read(name).decode("utf-8"))
            for name in _numbered_parts(archive, "ppt/notesSlides/notesSlide")
        }
        for name in _numbered_parts(archive, "ppt/slides/slide"):
            number = _part_number(name)
            body = _strip_xml(archive.read(name).decode("utf-8"))
            sections.append(f"--- Slide {number} ---\n{body}")
            if number in notes:
                sections.append(f"--- Notes {number} ---\n{notes.pop(number)}")
    if not sections:
        raise DocumentExtractionError("Presentation contains no slides")
    return "\n".join(sections)


def _extract_xlsx(data: bytes) -> str:
    with zipfile.ZipFile(io.BytesIO(data)) as archive:
        shared: list[str] = []
        if "xl/sharedStrings.xml" in archive.namelist():
            root = ElementTree.fromstring(archive.read("xl/sharedStrings.xml"))
            shared = [
                "".join(node.text or "" for node in item.iter(f"{_SHEET_NS}t"))
                for item in root.iter(f"{_SHEET_NS}si")
            ]
        sections: list[str] = []
        for name in _numbered_parts(archive, "xl/worksheets/sheet"):
            root = ElementTree.fromstring(archive.read(name))
            rows = []
            for row in root.iter(f"{_SHEET_NS}row"):
                values = [_cell_text(cell, shared) for cell in row.iter(f"{_SHEET_NS}c")]
                line = ", ".join(values)
                if line.replace(",", "").strip():
                    rows.append(line)
            sections.append(f"--- Sheet: {name.rsplit('/', 1)[-1][:-4]} ---\n" + "\n".join(rows))
    return "\n".join(sections)


def _cell_text(cell: ElementTree.Element, shared: list[str]) -> str:
    cell_type = cell.get("t")
    if cell_type == "inlineStr":
        return "".join(node.text or "" for node in cell.iter(f"{_SHEET_NS}t"))
    value = cell.find(f"{_SHEET_NS}v")
    if value is None or value.text is None:
        return ""
    if cell_type == "s":
        return shared[int(value.text)]
    return value.text
