from __future__ import annotations

import fnmatch
import re
from pathlib import Path
from typing import List, Optional, Pattern

DEFAULT_SKIP_DIRS = {
    ".git",
    ".hg",
    ".svn",
    ".venv",
    "venv",
    "__pycache__",
    "node_modules",
    "dist",
    "build",
}

DEFAULT_SKIP_EXTS = {
    ".png",
    ".jpg",
    ".jpeg",
    ".gif",
    ".pdf",
    ".zip",
    ".gz",
    ".tar",
    ".7z",
    ".jar",
    ".exe",
    ".dll",
    ".so",
    ".pyc",
}

DEFAULT_IGNORE_FILE = ".aletheiaignore"
GITIGNORE_FILE = ".gitignore"

# Remote search hits that are almost always documentation, fixtures or vendored code
REMOTE_SKIP_EXTS = {".md", ".txt", ".rst", ".doc"}
REMOTE_SKIP_FILES = {"package-lock.json"}
REMOTE_SKIP_SEGMENTS: List[Pattern[str]] = [
    re.compile(r"(^|/)node_modules/"),
    re.compile(r"(^|/)\.git/"),
    re.compile(r"(test|spec|example|demo)", re.I),
]

# Severity hints taken from a file's location
HIGH_SEVERITY_PATH = re.compile(r"(prod|production|deploy|live|release)", re.I)
MEDIUM_SEVERITY_PATH = re.compile(r"(\.env|config|settings|constants)", re.I)


def should_skip_remote_path(path: str) -> bool:
    """
    Decide whether a code-search hit should be left unfetched.

    Args:
        path: Repository-relative posix path of the hit

    Returns:
        True for documentation files, lock files, vendored directories and
        test/example/demo paths
    """
    if not path:
        return True
    p = path.replace("\\", "/")
    name = p.rsplit("/", 1)[-1]
    if name in REMOTE_SKIP_FILES:
        return True
    suffix = Path(name).suffix.lower()
    if suffix in REMOTE_SKIP_EXTS:
        return True
    return any(pattern.search(p) for pattern in REMOTE_SKIP_SEGMENTS)


def severity_hint(path: str) -> str:
    """'high', 'medium' or 'low' depending on where a key was found."""
    if HIGH_SEVERITY_PATH.search(path or ""):
        return "high"
    if MEDIUM_SEVERITY_PATH.search(path or ""):
        return "medium"
    return "low"


def _read_ignore_file(path: Path) -> List[str]:
    out: List[str] = []
    try:
        for line in path.read_text(encoding="utf-8", errors="ignore").splitlines():
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            out.append(line)
    except OSError:
        return []
    return out


def _pattern_matches(rel_str: str, is_dir: bool, pattern: str) -> bool:
    """
    Gitignore-like matching against a relative posix path.

    A leading '/' anchors the pattern to the root; otherwise it may match at
    any depth. A trailing '/' only matches directories. A pattern matching a
    directory matches everything under it.
    """
    anchored = pattern.startswith("/")
    dir_only = pattern.endswith("/")
    core = pattern.strip("/")
    parts = rel_str.split("/")

    # Every ancestor directory first, then the path itself
    for depth in range(1, len(parts) + 1):
        target = "/".join(parts[:depth])
        target_is_dir = depth < len(parts) or is_dir
        if dir_only and not target_is_dir:
            continue
        if fnmatch.fnmatchcase(target, core):
            return True
        if not anchored and fnmatch.fnmatchcase(target, f"*/{core}"):
            return True
    return False


def load_ignore_patterns(root: Path, extra_ignore_file: Optional[Path] = None) -> List[str]:
    """
    Ordered ignore patterns from ``.gitignore`` and ``.aletheiaignore`` (or
    ``extra_ignore_file``) at ``root``. Later entries win.
    """
    patterns: List[str] = []
    gi = root / GITIGNORE_FILE
    if gi.exists():
        patterns.extend(_read_ignore_file(gi))
    if extra_ignore_file is not None and extra_ignore_file.exists():
        patterns.extend(_read_ignore_file(extra_ignore_file))
    else:
        own = root / DEFAULT_IGNORE_FILE
        if own.exists():
            patterns.extend(_read_ignore_file(own))
    return patterns


def should_scan_path(path: Path, *, root: Path, ignores: List[str]) -> bool:
    """
    Decide whether a local path should be scanned.

    Paths outside ``root``, symlinks, anything under a DEFAULT_SKIP_DIRS
    directory and binary extensions are skipped; then ignore patterns apply
    in order, with '!pattern' re-including.
    """
    try:
        rel = path.resolve().relative_to(root.resolve())
    except ValueError:
        return False

    if rel == Path("."):
        return True
    try:
        if path.is_symlink():
            return False
        is_dir = path.is_dir()
    except OSError:
        return False

    if any(part in DEFAULT_SKIP_DIRS for part in rel.parts):
        return False
    if not is_dir and path.suffix.lower() in DEFAULT_SKIP_EXTS:
        return False

    rel_str = rel.as_posix()
    decision: Optional[bool] = None
    for pat in ignores:
        negated = pat.startswith("!")
        raw = pat[1:] if negated else pat
        if _pattern_matches(rel_str, is_dir, raw):
            decision = negated
    return True if decision is None else decision


__all__ = [
    "DEFAULT_IGNORE_FILE",
    "load_ignore_patterns",
    "severity_hint",
    "should_scan_path",
    "should_skip_remote_path",
]
