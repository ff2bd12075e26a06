"""
Reading local files for classification.

Binary files are skipped by probing the first KiB; text is decoded as UTF-8
with undecodable bytes dropped. Notebooks are flattened before they are
returned.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from Aletheia.utils.notebook import extract_notebook_text, is_notebook_path


def _looks_binary(sample: bytes) -> bool:
    """
    Heuristic check for binary content.

    Args:
        sample: The first bytes of the file

    Returns:
        True if the sample has a NUL byte or more than 30% non-text bytes
    """
    if not sample:
        return False

    if b"\x00" in sample:
        return True

    nontext = 0
    for byte in sample:
        if byte in b"\t\n\r\f\b":
            continue
        # UTF-8 multibyte sequences are >127; count only control bytes
        if byte < 32:
            nontext += 1

    return nontext / len(sample) > 0.3


def read_text_file(path: str | Path, max_bytes: Optional[int] = None) -> Optional[str]:
    """
    Read a text file for classification.

    Args:
        path: File to read
        max_bytes: Files larger than this are not read

    Returns:
        The decoded text, or None if the file is binary or too large

    Raises:
        OSError: If the file cannot be read
    """
    path = Path(path)

    if max_bytes is not None and path.stat().st_size > max_bytes:
        return None

    with path.open("rb") as f:
        data = f.read()
    if _looks_binary(data[:1024]):
        return None

    text = data.decode("utf-8", errors="ignore")
    if is_notebook_path(path.name):
        return extract_notebook_text(text)
    return text


__all__ = ["read_text_file"]
