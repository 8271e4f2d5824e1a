"""Plain-text extraction for chat attachments.

Text-like files are decoded directly. PDFs go through pypdf and XLSX
workbooks through openpyxl (read-only, cached values). Everything else is
rejected with FileParseError, which the orchestrator turns into an inline
error block for that one file.
"""

import io
import logging
from pathlib import Path

from openpyxl import load_workbook
from pypdf import PdfReader
from pypdf.errors import PdfReadError

logger = logging.getLogger(__name__)

# Characters of extracted text kept per file before truncation.
MAX_EXTRACTED_CHARS = 200_000

TEXT_MIME_PREFIXES = ("text/",)
TEXT_MIME_TYPES = frozenset({
    "application/json",
    "application/xml",
    "application/x-yaml",
    "application/yaml",
    "application/csv",
})
TEXT_EXTENSIONS = frozenset({
    ".txt", ".md", ".markdown", ".csv", ".tsv", ".json", ".xml",
    ".yaml", ".yml", ".log", ".html", ".htm",
})
PDF_MIME = "application/pdf"
XLSX_MIME = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


class FileParseError(Exception):
    """The file type is unsupported or its content could not be read."""


def _decode_text(data: bytes) -> str:
    for encoding in ("utf-8-sig", "utf-16"):
        try:
            return data.decode(encoding)
        except UnicodeDecodeError:
            continue
    return data.decode("latin-1")


def _parse_pdf(data: bytes) -> str:
    try:
        reader = PdfReader(io.BytesIO(data))
        pages = [page.extract_text() or "" for page in reader.pages]
    except (PdfReadError, ValueError) as e:
        raise FileParseError(f"Unreadable PDF: {e}") from e
    text = "\n\n".join(p.strip() for p in pages if p.strip())
    if not text:
        raise FileParseError("PDF contains no extractable text")
    return text


def _parse_xlsx(data: bytes) -> str:
    try:
        wb = load_workbook(io.BytesIO(data), read_only=True, data_only=True)
    except Exception as e:
        raise FileParseError(f"Unreadable workbook: {e}") from e

    # Read-only sheets parse their XML lazily, during iteration.
    sections = []
    try:
        for ws in wb.worksheets:
            lines = []
            for row in ws.values:
                cells = ["" if v is None else str(v) for v in row]
                if any(cells):
                    lines.append("\t".join(cells))
            sections.append(f"# Sheet: {ws.title}\n" + "\n".join(lines))
    except Exception as e:
        raise FileParseError(f"Unreadable workbook: {e}") from e
    finally:
        wb.close()
    return "\n\n".join(sections)


def _kind_for(filename: str, mime_type: str) -> str | None:
    mime = (mime_type or "").split(";")[0].strip().lower()
    suffix = Path(filename or "").suffix.lower()
    if mime == PDF_MIME or suffix == ".pdf":
        return "pdf"
    if mime == XLSX_MIME or suffix == ".xlsx":
        return "xlsx"
    if mime.startswith(TEXT_MIME_PREFIXES) or mime in TEXT_MIME_TYPES or suffix in TEXT_EXTENSIONS:
        return "text"
    return None


def parse_file(data: bytes, filename: str, mime_type: str) -> str:
    """Extract the text content of one uploaded file.

    Args:
        data: Raw file bytes.
        filename: Client-supplied file name (used for the extension).
        mime_type: Client-supplied content type.

    Returns:
        Extracted text, truncated to MAX_EXTRACTED_CHARS.

    Raises:
        FileParseError: If the type is unsupported or parsing fails.
    """
    kind = _kind_for(filename, mime_type)
    if kind is None:
        raise FileParseError(f"Unsupported file type: {mime_type or 'unknown'}")

    if kind == "pdf":
        text = _parse_pdf(data)
    elif kind == "xlsx":
        text = _parse_xlsx(data)
    else:
        text = _decode_text(data)

    if len(text) > MAX_EXTRACTED_CHARS:
        logger.info(
            "Truncating extracted text of %s from %d to %d chars",
            filename, len(text), MAX_EXTRACTED_CHARS,
        )
        text = text[:MAX_EXTRACTED_CHARS] + "\n[... truncated]"
    return text
