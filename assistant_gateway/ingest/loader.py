# Mime type -> extractor registry. Single place for "bytes + mime type -> text".
# Cases: text, pdf, spreadsheet, unsupported. pypdf and pandas are imported lazily
# so a missing extractor degrades one attachment instead of the whole app.

import fnmatch
import io
from enum import Enum
from pathlib import Path


class ExtractorKind(str, Enum):
    TEXT = "text"
    PDF = "pdf"
    SPREADSHEET = "spreadsheet"
    UNSUPPORTED = "unsupported"


class ExtractorUnavailableError(Exception):
    """Raised when the library behind an extractor is not installed."""

    def __init__(self, kind: ExtractorKind, library: str) -> None:
        self.kind = kind
        self.library = library
        super().__init__(f"no {kind.value} extractor available ({library} not installed)")


# First match wins; patterns use fnmatch syntax.
MIME_PATTERNS: list[tuple[str, ExtractorKind]] = [
    ("text/*", ExtractorKind.TEXT),
    ("application/json", ExtractorKind.TEXT),
    ("application/xml", ExtractorKind.TEXT),
    ("application/x-yaml", ExtractorKind.TEXT),
    ("application/javascript", ExtractorKind.TEXT),
    ("application/pdf", ExtractorKind.PDF),
    ("application/vnd.openxmlformats-officedocument.spreadsheetml.sheet", ExtractorKind.SPREADSHEET),
    ("application/vnd.ms-excel", ExtractorKind.SPREADSHEET),
]

# Used when the declared type is missing or generic.
EXTENSION_KINDS: dict[str, ExtractorKind] = {
    ".txt": ExtractorKind.TEXT,
    ".md": ExtractorKind.TEXT,
    ".csv": ExtractorKind.TEXT,
    ".json": ExtractorKind.TEXT,
    ".pdf": ExtractorKind.PDF,
    ".xlsx": ExtractorKind.SPREADSHEET,
    ".xls": ExtractorKind.SPREADSHEET,
}

# Google-native documents have no bytes of their own; they are exported.
GOOGLE_EXPORTS: dict[str, str] = {
    "application/vnd.google-apps.document": "text/plain",
    "application/vnd.google-apps.spreadsheet": "text/csv",
    "application/vnd.google-apps.presentation": "text/plain",
}

_GENERIC_TYPES = {"", "application/octet-stream", "binary/octet-stream"}


def classify(mime_type: str | None, filename: str | None = None) -> ExtractorKind:
    """Pick the extractor for a mime type, falling back to the file extension."""
    mime = (mime_type or "").split(";")[0].strip().lower()
    if mime not in _GENERIC_TYPES:
        for pattern, kind in MIME_PATTERNS:
            if fnmatch.fnmatchcase(mime, pattern):
                return kind
        return ExtractorKind.UNSUPPORTED
    ext = Path(filename).suffix.lower() if filename else ""
    return EXTENSION_KINDS.get(ext, ExtractorKind.UNSUPPORTED)


def bytes_to_text(raw: bytes, kind: ExtractorKind) -> str:
    """
    Convert raw bytes to text with the extractor for `kind`.

    Raises ExtractorUnavailableError when the extractor's library is missing and
    ValueError for ExtractorKind.UNSUPPORTED.
    """
    if kind is ExtractorKind.TEXT:
        return raw.decode("utf-8", errors="replace")
    if kind is ExtractorKind.PDF:
        return _read_pdf(raw)
    if kind is ExtractorKind.SPREADSHEET:
        return _read_excel(raw)
    raise ValueError(f"no extractor for {kind.value} content")


def _read_pdf(raw: bytes) -> str:
    try:
        from pypdf import PdfReader
    except ImportError as e:
        raise ExtractorUnavailableError(ExtractorKind.PDF, "pypdf") from e
    reader = PdfReader(io.BytesIO(raw))
    return "\n".join(page.extract_text() or "" for page in reader.pages)


def _read_excel(raw: bytes) -> str:
    try:
        import pandas as pd
    except ImportError as e:
        raise ExtractorUnavailableError(ExtractorKind.SPREADSHEET, "pandas") from e
    try:
        df = pd.read_excel(io.BytesIO(raw), sheet_name=None, header=None)
    except ImportError as e:
        # pandas defers the engine (openpyxl / xlrd) import to read time
        raise ExtractorUnavailableError(ExtractorKind.SPREADSHEET, str(e.name or "excel engine")) from e
    parts = []
    for sheet_name, sheet_df in df.items():
        body = sheet_df.astype(str).to_csv(sep=" ", index=False, header=False)
        parts.append(f"[{sheet_name}]\n{body}")
    return "\n\n".join(parts)
