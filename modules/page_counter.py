"""Page counting for uploaded documents."""

from __future__ import annotations

import math
from pathlib import Path

import openpyxl
from docx import Document
from pypdf import PdfReader

from core.exceptions import UnsupportedFileError
from logging_config import get_logger


logger = get_logger(__name__)

IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png"}
SUPPORTED_EXTENSIONS = {".pdf", ".docx", ".xlsx"} | IMAGE_EXTENSIONS

# Rough print density of a word-processing document
WORDS_PER_PAGE = 350


class PageCounter:
    """
    Count printable pages of a stored upload.

    The type is taken from the original file name, not from the stored
    path, since the stored name may have been sanitized.
    """

    @staticmethod
    def is_allowed(filename: str) -> bool:
        return Path(filename or "").suffix.lower() in SUPPORTED_EXTENSIONS

    def count_pages(self, file_path: str | Path, original_name: str) -> int:
        """
        Count pages of ``file_path``.

        Returns:
            Page count; 0 for an empty file or a document with no text

        Raises:
            UnsupportedFileError: unknown extension or unreadable document
        """
        ext = Path(original_name or "").suffix.lower()
        if ext not in SUPPORTED_EXTENSIONS:
            raise UnsupportedFileError(original_name)

        path = Path(file_path)
        if path.stat().st_size == 0:
            return 0

        if ext in IMAGE_EXTENSIONS:
            return 1

        try:
            if ext == ".pdf":
                return len(PdfReader(str(path)).pages)
            if ext == ".docx":
                return self._count_docx(path)
            return self._count_xlsx(path)
        except Exception as exc:
            logger.warning(f"Page counting failed for {original_name}: {exc}")
            raise UnsupportedFileError(
                original_name, message=f"Could not read {ext[1:].upper()} document"
            ) from exc

    def _count_docx(self, path: Path) -> int:
        document = Document(str(path))
        chunks = [p.text for p in document.paragraphs]
        for table in document.tables:
            for row in table.rows:
                chunks.extend(cell.text for cell in row.cells)
        words = " ".join(chunks).split()
        if not words:
            return 0
        return math.ceil(len(words) / WORDS_PER_PAGE)

    def _count_xlsx(self, path: Path) -> int:
        workbook = openpyxl.load_workbook(str(path), read_only=True)
        try:
            return len(workbook.sheetnames)
        finally:
            workbook.close()
