"""
Document executor: PDF, DOCX, TXT and RTF.

Every implemented pair goes through a plain-text intermediate: a reader turns
the source bytes into text and a writer lays that text out in the target
format. Pairs missing from IMPLEMENTED_CONVERSIONS are refused with
NOT_IMPLEMENTED instead of producing lossy output.
"""
import io
import logging
import re
from typing import Callable, Optional

from docx import Document
from pypdf import PdfReader
from reportlab.pdfbase.pdfmetrics import stringWidth
from reportlab.pdfgen import canvas

from fileconv.conversion.models import ConvertedFile
from fileconv.conversion.rtf import rtf_to_text, text_to_rtf
from fileconv.detector import file_extension
from fileconv.errors import ConversionError, ErrorCode
from fileconv.registry import DOCUMENT_FORMATS, content_type_for, normalize_format_id, output_filename

logger = logging.getLogger("fileconv.documents")

# Layout for text -> PDF (points; US Letter)
PAGE_WIDTH, PAGE_HEIGHT = 612, 792
PAGE_MARGIN = 50
FONT_NAME = "Helvetica"
FONT_SIZE = 12
LINE_HEIGHT = FONT_SIZE + 5
TAB_SIZE = 4

IMPLEMENTED_CONVERSIONS = frozenset({
    ("pdf", "txt"), ("pdf", "rtf"),
    ("docx", "txt"), ("docx", "rtf"), ("docx", "pdf"),
    ("txt", "pdf"), ("txt", "rtf"), ("txt", "docx"),
    ("rtf", "txt"), ("rtf", "pdf"), ("rtf", "docx"),
})

# Declared-type hints, used when the suffix is not a document extension
_SOURCE_HINTS = (
    ("pdf", "pdf"),
    ("docx", "wordprocessingml"),
    ("txt", "text/plain"),
    ("rtf", "rtf"),
)
_XML_INCOMPATIBLE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f]")


def detect_document_source(filename: Optional[str], content_type: Optional[str]) -> str:
    ctype = (content_type or "").lower()
    ext = file_extension(filename)
    if ext in DOCUMENT_FORMATS:
        return ext
    for format_id, mime_hint in _SOURCE_HINTS:
        if mime_hint in ctype:
            return format_id
    return ""


def decode_text(data: bytes) -> str:
    """UTF-8 (with or without BOM), then UTF-16 when a BOM says so, else Latin-1."""
    if data.startswith((b"\xff\xfe", b"\xfe\xff")):
        try:
            return data.decode("utf-16")
        except UnicodeDecodeError:
            pass
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError:
        return data.decode("latin-1")


# ---------------------------------------------------------------------------
# Readers
# ---------------------------------------------------------------------------

def pdf_to_text(data: bytes) -> str:
    try:
        reader = PdfReader(io.BytesIO(data))
        if reader.is_encrypted:
            reader.decrypt("")
        pages = [(page.extract_text() or "").strip() for page in reader.pages]
    except Exception as e:
        logger.exception("PDF text extraction failed: %s", e)
        raise ConversionError(
            ErrorCode.PDF_EXTRACTION_FAILED,
            "Could not read the PDF. The file may be corrupt or password protected.",
            details=str(e),
        ) from e
    text = "\n\n".join(p for p in pages if p)
    if not text.strip():
        raise ConversionError(
            ErrorCode.PDF_EXTRACTION_FAILED,
            "No extractable text found. The PDF may contain only scanned images.",
        )
    return text


def docx_to_text(data: bytes) -> str:
    try:
        doc = Document(io.BytesIO(data))
    except Exception as e:
        logger.exception("DOCX text extraction failed: %s", e)
        raise ConversionError(
            ErrorCode.DOCX_EXTRACTION_FAILED,
            "Could not read the DOCX file. It may be corrupt or not a Word document.",
            details=str(e),
        ) from e
    lines = [p.text for p in doc.paragraphs]
    for table in doc.tables:
        for row in table.rows:
            lines.append("\t".join(cell.text for cell in row.cells))
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Writers
# ---------------------------------------------------------------------------

def wrap_line(line: str, max_width: float, measure: Callable[[str], float]) -> list[str]:
    """Greedy word wrap by measured width; words wider than a line are split."""
    if not line.strip():
        return [""]
    wrapped: list[str] = []
    current = ""
    for word in line.split(" "):
        candidate = word if not current else f"{current} {word}"
        if measure(candidate) <= max_width:
            current = candidate
            continue
        if current:
            wrapped.append(current)
        current = ""
        while measure(word) > max_width:
            cut = len(word)
            while cut > 1 and measure(word[:cut]) > max_width:
                cut -= 1
            wrapped.append(word[:cut])
            word = word[cut:]
        current = word
    wrapped.append(current)
    return wrapped


def text_to_pdf(text: str, title: str = "") -> bytes:
    buf = io.BytesIO()
    pdf = canvas.Canvas(buf, pagesize=(PAGE_WIDTH, PAGE_HEIGHT))
    if title:
        pdf.setTitle(title)
    max_width = PAGE_WIDTH - 2 * PAGE_MARGIN

    def measure(s: str) -> float:
        return stringWidth(s, FONT_NAME, FONT_SIZE)

    pdf.setFont(FONT_NAME, FONT_SIZE)
    y = PAGE_HEIGHT - PAGE_MARGIN
    for raw_line in text.split("\n"):
        for line in wrap_line(raw_line.expandtabs(TAB_SIZE), max_width, measure):
            if y < PAGE_MARGIN:
                pdf.showPage()
                pdf.setFont(FONT_NAME, FONT_SIZE)
                y = PAGE_HEIGHT - PAGE_MARGIN
            pdf.drawString(PAGE_MARGIN, y, line)
            y -= LINE_HEIGHT
    pdf.showPage()
    pdf.save()
    return buf.getvalue()


def text_to_docx(text: str, title: str = "") -> bytes:
    doc = Document()
    if title:
        doc.core_properties.title = title
    for line in _XML_INCOMPATIBLE.sub("", text).split("\n"):
        doc.add_paragraph(line)
    buf = io.BytesIO()
    doc.save(buf)
    return buf.getvalue()


def _text_to_rtf_bytes(text: str, title: str = "") -> bytes:
    return text_to_rtf(text).encode("ascii")


def _text_to_txt_bytes(text: str, title: str = "") -> bytes:
    return text.encode("utf-8")


READERS: dict[str, Callable[[bytes], str]] = {
    "pdf": pdf_to_text,
    "docx": docx_to_text,
    "txt": lambda data: decode_text(data).replace("\r\n", "\n").replace("\r", "\n"),
    "rtf": lambda data: rtf_to_text(decode_text(data)),
}

WRITERS: dict[str, Callable[[str, str], bytes]] = {
    "txt": _text_to_txt_bytes,
    "pdf": text_to_pdf,
    "rtf": _text_to_rtf_bytes,
    "docx": text_to_docx,
}


def convert_document(
    data: bytes,
    filename: str,
    content_type: Optional[str],
    target: str,
) -> ConvertedFile:
    """Convert a PDF/DOCX/TXT/RTF document; raises ConversionError on failure."""
    source = detect_document_source(filename, content_type)
    if not source:
        raise ConversionError(ErrorCode.INVALID_FILE_TYPE, "Unsupported file type for document conversion")
    target = normalize_format_id(target)
    pair = f"{source.upper()} to {target.upper()}"
    if target not in DOCUMENT_FORMATS:
        raise ConversionError(
            ErrorCode.UNSUPPORTED_CONVERSION,
            f"Unsupported conversion: {pair}",
            supported=sorted(DOCUMENT_FORMATS),
        )
    out_name = output_filename(filename, target)
    if source == target:
        return ConvertedFile(content=data, content_type=content_type_for(target), filename=out_name)
    if (source, target) not in IMPLEMENTED_CONVERSIONS:
        raise ConversionError(ErrorCode.NOT_IMPLEMENTED, f"{pair} conversion is not yet implemented.")

    text = READERS[source](data)
    title = out_name.rsplit(".", 1)[0]
    try:
        content = WRITERS[target](text, title)
    except Exception as e:
        logger.exception("Document conversion %s failed: %s", pair, e)
        raise ConversionError(
            f"{source.upper()}_TO_{target.upper()}_FAILED",
            f"Failed to convert {pair}.",
            status_code=500,
            details=str(e),
        ) from e
    logger.info("Converted %s -> %s (%s bytes)", filename, out_name, len(content))
    return ConvertedFile(content=content, content_type=content_type_for(target), filename=out_name)
