"""
File, path and notebook helpers.
"""
from __future__ import annotations

from Aletheia.utils.file_loader import read_text_file
from Aletheia.utils.notebook import extract_notebook_text
from Aletheia.utils.path_filters import should_scan_path, should_skip_remote_path

__all__ = [
    "extract_notebook_text",
    "read_text_file",
    "should_scan_path",
    "should_skip_remote_path",
]
