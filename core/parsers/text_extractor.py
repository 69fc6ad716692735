"""
File classification, size validation, content hashing and text extraction.
"""
import asyncio
import hashlib
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from core.parsers.pdf_parser import extract_text_from_pdf
from dao.models.file import FileType

logger = logging.getLogger(__name__)

MAX_FILE_SIZE_MB = 10

TEXT_EXTENSIONS = {"txt", "md", "markdown", "rtf"}
CODE_EXTENSIONS = {
    "js", "jsx", "ts", "tsx", "py", "java", "cpp", "c", "h", "cs", "rb", "go",
    "rs", "php", "swift", "kt", "scala", "sh", "bash", "sql", "html", "css",
    "scss", "sass", "json", "xml", "yaml", "yml", "toml", "ini", "conf",
    "config", "env",
}
IMAGE_EXTENSIONS = {"png", "jpg", "jpeg", "gif", "webp", "bmp", "svg", "ico"}
SPREADSHEET_EXTENSIONS = {"xlsx", "xls", "csv", "tsv"}
DELIMITED_EXTENSIONS = {"csv", "tsv"}

EMPTY_TEXT_WARNING = (
    "Extracted text is empty. File may be corrupted, password-protected, or contain no text."
)


class FileExtractionError(Exception):
    """
    Raised when a file cannot be validated or its text cannot be extracted.

    Codes: FILE_TOO_LARGE, EMPTY_FILE, PDF_PARSE_ERROR, HASH_GENERATION_ERROR,
    UNKNOWN_ERROR. Unsupported types are not errors; they produce a warning.
    """

    def __init__(self, message: str, code: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details


@dataclass
class ExtractionResult:
    """Text and metadata extracted from one file."""

    text: str
    file_type: FileType
    content_hash: str
    file_size_bytes: int
    word_count: int
    char_count: int
    filename: str
    extension: str
    success: bool = True
    warnings: List[str] = field(default_factory=list)


def get_file_extension(filename: str) -> str:
    """Lowercased text after the last dot, or an empty string."""
    if "." not in filename:
        return ""
    return filename.rsplit(".", 1)[1].lower()


def detect_file_type(filename: str) -> FileType:
    """Classify a file by its extension."""
    extension = get_file_extension(filename)
    if extension == "pdf":
        return FileType.PDF
    if extension in TEXT_EXTENSIONS:
        return FileType.TEXT
    if extension in CODE_EXTENSIONS:
        return FileType.CODE
    if extension in IMAGE_EXTENSIONS:
        return FileType.IMAGE
    if extension in SPREADSHEET_EXTENSIONS:
        return FileType.SPREADSHEET
    return FileType.OTHER


def validate_file_size(content: bytes, max_size_mb: float = MAX_FILE_SIZE_MB) -> None:
    """
    Reject empty or oversized content.

    Args:
        content: Raw file bytes
        max_size_mb: Inclusive upper bound in megabytes

    Raises:
        FileExtractionError: EMPTY_FILE or FILE_TOO_LARGE
    """
    size = len(content)
    if size == 0:
        raise FileExtractionError("File is empty (0 bytes)", code="EMPTY_FILE")

    max_size_bytes = int(max_size_mb * 1024 * 1024)
    if size > max_size_bytes:
        raise FileExtractionError(
            f"File size ({size / 1024 / 1024:.2f}MB) exceeds maximum allowed size ({max_size_mb}MB)",
            code="FILE_TOO_LARGE",
            details={"file_size_bytes": size, "max_size_bytes": max_size_bytes},
        )


def generate_content_hash(content: bytes) -> str:
    """SHA-256 hex digest of the raw bytes."""
    try:
        return hashlib.sha256(content).hexdigest()
    except Exception as e:
        raise FileExtractionError(
            f"Failed to generate content hash: {e}", code="HASH_GENERATION_ERROR"
        ) from e


def count_words(text: str) -> int:
    return len(text.split())


def _decode_text(content: bytes, filename: str, warnings: List[str]) -> str:
    try:
        return content.decode("utf-8")
    except UnicodeDecodeError:
        logger.warning(f"{filename} is not valid UTF-8, decoding as latin-1")
        warnings.append("File is not valid UTF-8; decoded as latin-1.")
        return content.decode("latin-1")


async def _extract_pdf(content: bytes, filename: str) -> str:
    loop = asyncio.get_running_loop()
    try:
        return await loop.run_in_executor(None, extract_text_from_pdf, content)
    except Exception as e:
        size_mb = len(content) / 1024 / 1024
        message = f"PDF extraction failed for {filename} ({size_mb:.2f}MB): {e}"
        lowered = str(e).lower()
        if "password" in lowered or "encrypt" in lowered:
            message += ". The PDF may be password-protected."
        raise FileExtractionError(message, code="PDF_PARSE_ERROR") from e


async def extract_text(content: bytes, filename: str) -> ExtractionResult:
    """
    Validate, hash and extract text from a file.

    Text and code files are decoded verbatim, PDFs are parsed, CSV/TSV are
    passed through as text. Images, legacy spreadsheets and unknown types
    yield empty text and a warning.

    Args:
        content: Raw file bytes
        filename: Original filename including extension

    Returns:
        ExtractionResult

    Raises:
        FileExtractionError: On size violations, PDF parse failures or any
            unexpected error (UNKNOWN_ERROR)
    """
    try:
        validate_file_size(content, MAX_FILE_SIZE_MB)
        content_hash = generate_content_hash(content)
        extension = get_file_extension(filename)
        file_type = detect_file_type(filename)
        warnings: List[str] = []
        text = ""

        if file_type == FileType.PDF:
            text = await _extract_pdf(content, filename)
        elif file_type in (FileType.TEXT, FileType.CODE):
            text = _decode_text(content, filename, warnings)
        elif file_type == FileType.SPREADSHEET and extension in DELIMITED_EXTENSIONS:
            text = _decode_text(content, filename, warnings)
        elif file_type == FileType.SPREADSHEET:
            warnings.append(
                "XLSX/XLS files: only CSV format supported in MVP. "
                "Please convert to CSV for text extraction."
            )
        elif file_type == FileType.IMAGE:
            warnings.append(
                "Image files: text extraction via OCR not yet supported. "
                "Only filename will be processed."
            )
        else:
            warnings.append(
                f"Unsupported file type: {'.' + extension if extension else 'no extension'}. "
                "Only filename will be processed."
            )

        if file_type in (FileType.PDF, FileType.TEXT, FileType.CODE) and not text.strip():
            warnings.append(EMPTY_TEXT_WARNING)

        word_count = count_words(text)
        logger.info(
            f"Extracted {word_count} words from {filename} "
            f"(type={file_type.value}, {len(content)} bytes)"
        )
        return ExtractionResult(
            text=text,
            file_type=file_type,
            content_hash=content_hash,
            file_size_bytes=len(content),
            word_count=word_count,
            char_count=len(text),
            filename=filename,
            extension=extension,
            success=True,
            warnings=warnings,
        )
    except FileExtractionError:
        raise
    except Exception as e:
        logger.error(f"Unexpected error extracting {filename}: {e}", exc_info=True)
        raise FileExtractionError(
            f"Unexpected error during extraction: {e}", code="UNKNOWN_ERROR"
        ) from e
