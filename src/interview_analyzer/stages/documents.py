"""
Résumé and job description document reading.
"""

import logging
from pathlib import Path

logger = logging.getLogger(__name__)

SUPPORTED_SUFFIXES = (".txt", ".md", ".docx")


def _read_docx(file_path: Path) -> str:
    """
    Read text content from a .docx file.

    Args:
        file_path: Path to the .docx file.

    Returns:
        Extracted text content, one paragraph per line.
    """
    from docx import Document

    doc = Document(str(file_path))
    paragraphs = [para.text for para in doc.paragraphs if para.text.strip()]
    return "\n".join(paragraphs)


def read_document(file_path: str | Path) -> str:
    """
    Read a résumé or job description.

    Args:
        file_path: Path to a .txt, .md or .docx file.

    Returns:
        The document text, stripped.

    Raises:
        FileNotFoundError: If the file doesn't exist.
        ValueError: If the format is unsupported or the file is empty.
    """
    path = Path(file_path)
    if not path.exists():
        raise FileNotFoundError(f"Document not found: {path}")

    suffix = path.suffix.lower()
    if suffix not in SUPPORTED_SUFFIXES:
        raise ValueError(f"Unsupported document type '{suffix}' (expected one of {', '.join(SUPPORTED_SUFFIXES)})")

    if suffix == ".docx":
        text = _read_docx(path).strip()
    else:
        text = path.read_text(encoding="utf-8").strip()

    if not text:
        raise ValueError(f"Document is empty: {path}")

    logger.info(f"Read {len(text)} characters from {path.name}")
    return text
