from __future__ import annotations

import io
import zipfile

import fitz  # PyMuPDF
import pytest

from app.services.documents.extractor import DOCX_TYPE, PPTX_TYPE, XLSX_TYPE, extract_text
from app.services.screening.errors import DocumentExtractionError

SHEET_NS = "http://schemas.openxmlformats.org/spreadsheetml/2006/main"


def _archive(parts: dict[str, str]) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        for name, content in parts.items():
            archive.writestr(name, content)
    return buffer.getvalue()


def _slide(text: str) -> str:
    return f"<p:sld><p:cSld><p:spTree><a:t>{text}</a:t></p:spTree></p:cSld></p:sld>"


def test_plain_text_is_decoded():
    assert extract_text("Q3 review: Acme".encode(), "text/plain", "notes.txt") == "Q3 review: Acme"


def test_docx_paragraphs_become_lines():
    document = (
        "<w:document><w:body>"
        "<w:p><w:r><w:t>Project Utopia</w:t></w:r></w:p>"
        "<w:p><w:r><w:t>Met with</w:t></w:r><w:r><w:t>Acme CFO</w:t></w:r></w:p>"
        "</w:body></w:document>"
    )
    data = _archive({"word/document.xml": document})

    assert extract_text(data, DOCX_TYPE, "memo.docx") == "Project Utopia\nMet with Acme CFO"


def test_docx_detected_by_extension():
    data = _archive({"word/document.xml": "<w:p><w:t>Hello</w:t></w:p>"})

    assert extract_text(data, "application/octet-stream", "memo.DOCX") == "Hello"


def test_pptx_slides_in_numeric_order_with_their_notes():
    data = _archive(
        {
            "ppt/slides/slide10.xml": _slide("Closing"),
            "ppt/slides/slide2.xml": _slide("Financials"),
            "ppt/slides/slide1.xml": _slide("Intro"),
            "ppt/notesSlides/notesSlide1.xml": _slide("Speaker notes"),
            "ppt/notesSlides/notesSlide10.xml": _slide("Next steps"),
            "ppt/slides/_rels/slide1.xml.rels": "<Relationships/>",
        }
    )

    text = extract_text(data, PPTX_TYPE, "deck.pptx")

    assert text.splitlines() == [
        "--- Slide 1 ---",
        "Intro",
        "--- Notes 1 ---",
        "Speaker notes",
        "--- Slide 2 ---",
        "Financials",
        "--- Slide 10 ---",
        "Closing",
        "--- Notes 10 ---",
        "Next steps",
    ]


def test_pptx_without_slides_fails():
    data = _archive({"[Content_Types].xml": "<Types/>"})

    with pytest.raises(DocumentExtractionError):
        extract_text(data, PPTX_TYPE, "empty.pptx")


def test_xlsx_resolves_shared_and_inline_strings():
    shared = (
        f'<sst xmlns="{SHEET_NS}"><si><t>Company</t></si><si><t>Acme</t></si></sst>'
    )
    sheet = (
        f'<worksheet xmlns="{SHEET_NS}"><sheetData>'
        '<row r="1"><c t="s"><v>0</v></c><c><v>42</v></c></row>'
        '<row r="2"><c t="s"><v>1</v></c><c t="inlineStr"><is><t>Inline</t></is></c></row>'
        '<row r="3"><c/></row>'
        "</sheetData></worksheet>"
    )
    data = _archive({"xl/sharedStrings.xml": shared, "xl/worksheets/sheet1.xml": sheet})

    text = extract_text(data, XLSX_TYPE, "targets.xlsx")

    assert text == "--- Sheet: sheet1 ---\nCompany, 42\nAcme, Inline"


def _pdf(*pages: str) -> bytes:
    with fitz.open() as document:
        for text in pages:
            page = document.new_page()
            if text:
                page.insert_text((72, 72), text)
        return document.tobytes()


def test_pdf_pages_are_joined_skipping_blank_ones():
    data = _pdf("Board minutes", "", "Acme CFO")

    assert extract_text(data, "application/pdf", "minutes.pdf") == "Board minutes\nAcme CFO"


def test_blank_pdf_yields_empty_text():
    assert extract_text(_pdf(""), "application/pdf", "scan.pdf") == ""


@pytest.mark.parametrize(
    ("data", "content_type", "file_name"),
    [
        (b"not a zip archive", DOCX_TYPE, "memo.docx"),
        (b"not a pdf", "application/pdf", "memo.pdf"),
        (_archive({"word/other.xml": "<x/>"}), DOCX_TYPE, "memo.docx"),
        (_archive({"xl/worksheets/sheet1.xml": "<worksheet"}), XLSX_TYPE, "broken.xlsx"),
    ],
)
def test_corrupt_documents_raise_extraction_error(data, content_type, file_name):
    with pytest.raises(DocumentExtractionError) as excinfo:
        extract_text(data, content_type, file_name)

    assert excinfo.value.code == "422_EXTRACTION_FAILED"
