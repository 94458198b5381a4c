"""
Quill - Text Utilities
=======================
Helpers for cleaning extracted document text and deriving source
identifiers from filenames.

Consumed by the ``IngestionPipeline``; stateless and side-effect-free.
"""

from __future__ import annotations

import re
import unicodedata
from pathlib import Path


# Control characters (C0/C1) except \n, \r, \t, plus BOM, zero-width
# characters, soft hyphens and directional marks left by PDF/DOCX extractors.
_NON_PRINTABLE_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f\ufeff\u200b\u200c\u200d\u200e\u200f\u00ad\u2060\ufffe]")

_SOURCE_ID_RE = re.compile(r"[^a-z0-9]+")

_DEFAULT_SOURCE_ID = "default"


def clean_text(text: str) -> str:
    """
    Sanitise raw document text before chunking.

    Steps:
        1. Unicode NFC normalisation.
        2. Strip non-printable / zero-width characters.
        3. Collapse runs of horizontal whitespace into a single space,
           *preserving* newlines.
        4. Strip leading / trailing whitespace from every line.
        5. Collapse 3+ consecutive blank lines to 2.

    Args:
        text: Raw text extracted from an uploaded file.

    Returns:
        Cleaned text ready for chunking.
    """
    text = unicodedata.normalize("NFC", text)
    text = _NON_PRINTABLE_RE.sub("", text)
    text = re.sub(r"[^\S\n]+", " ", text)
    lines = [line.strip() for line in text.splitlines()]
    text = "\n".join(lines)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def source_id_from_filename(filename: str) -> str:
    """
    Derive a stable source identifier from a file name.

    The stem is lower-cased and every run of non-alphanumeric characters
    becomes a single ``-``, so re-uploading ``Chapter 1.txt`` and
    ``chapter_1.md`` replaces the same source.

    Examples::

        "Chapter 1.txt"        → "chapter-1"
        "Photosynthesis.MD"    → "photosynthesis"
        "___.txt"              → "default"
    """
    stem = Path(filename).stem.lower()
    slug = _SOURCE_ID_RE.sub("-", stem).strip("-")
    return slug or _DEFAULT_SOURCE_ID
