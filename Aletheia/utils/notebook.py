"""Flatten Jupyter notebooks into plain text."""
from __future__ import annotations

import json
import logging
from typing import Any, List

logger = logging.getLogger(__name__)


def is_notebook_path(path: str) -> bool:
    return path.lower().endswith(".ipynb")


def _as_text(value: Any) -> str:
    if isinstance(value, list):
        return "".join(str(v) for v in value)
    if value is None:
        return ""
    return str(value)


def extract_notebook_text(raw: str) -> str:
    """
    Join every cell source and every textual output of a notebook.

    Cells are separated by blank lines. Content that is not valid notebook
    JSON is returned unchanged so that it is still classified.
    """
    try:
        notebook = json.loads(raw)
    except ValueError:
        logger.debug("Notebook is not valid JSON, classifying raw text")
        return raw
    if not isinstance(notebook, dict) or not isinstance(notebook.get("cells"), list):
        return raw

    parts: List[str] = []
    for cell in notebook["cells"]:
        if not isinstance(cell, dict):
            continue
        source = _as_text(cell.get("source"))
        if source:
            parts.append(source)
        for output in cell.get("outputs") or []:
            if not isinstance(output, dict):
                continue
            if "text" in output:
                parts.append(_as_text(output["text"]))
            data = output.get("data")
            if isinstance(data, dict) and "text/plain" in data:
                parts.append(_as_text(data["text/plain"]))
    return "\n\n".join(parts)


__all__ = ["extract_notebook_text", "is_notebook_path"]
