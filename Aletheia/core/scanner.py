from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import List, Optional

from Aletheia.core.detector import ClassificationPipeline
from Aletheia.core.result import Candidate, Origin, ScanResult
from Aletheia.utils.file_loader import read_text_file
from Aletheia.utils.path_filters import load_ignore_patterns, should_scan_path

logger = logging.getLogger(__name__)

DEFAULT_MAX_FILE_SIZE = 10 * 1024 * 1024


def _classify_file(
    pipeline: ClassificationPipeline,
    file_path: Path,
    root: Path,
    max_file_size: int,
) -> Optional[tuple]:
    text = read_text_file(file_path, max_bytes=max_file_size)
    if text is None:
        return None
    try:
        location = file_path.relative_to(root).as_posix()
    except ValueError:
        location = file_path.name
    origin = Origin(source_identifier=f"local:{root}", location=location)
    return pipeline.classify(text, origin), text.count("\n") + 1


def scan_directory(
    directory: str | Path,
    pipeline: Optional[ClassificationPipeline] = None,
    recursive: bool = True,
    max_file_size: int = DEFAULT_MAX_FILE_SIZE,
    ignore_file: Optional[Path] = None,
    ignore_patterns: Optional[List[str]] = None,
) -> ScanResult:
    """
    Scan a local directory for leaked provider keys.

    Args:
        directory: Path to directory to scan
        pipeline: Classification pipeline (default rules if omitted)
        recursive: If True, scan subdirectories
        max_file_size: Maximum file size to scan (in bytes)
        ignore_file: Extra ignore file (defaults to ``.aletheiaignore`` at the root)
        ignore_patterns: Additional gitignore-style patterns, applied last

    Returns:
        ScanResult containing all candidates

    Example:
        >>> result = scan_directory("./my_project")
        >>> for candidate in result.candidates:
        ...     print(candidate)
    """
    start_time = time.time()
    dir_path = Path(directory)

    if not dir_path.is_dir():
        return ScanResult(errors=[f"Not a directory: {directory}"])

    pipeline = pipeline or ClassificationPipeline()
    ignores = load_ignore_patterns(dir_path, ignore_file) + list(ignore_patterns or [])

    candidates: List[Candidate] = []
    scanned_files = 0
    total_lines = 0
    errors: List[str] = []

    file_iter = sorted(dir_path.rglob("*")) if recursive else sorted(dir_path.glob("*"))

    for file_path in file_iter:
        if not file_path.is_file() or not should_scan_path(file_path, root=dir_path, ignores=ignores):
            continue

        try:
            if file_path.stat().st_size > max_file_size:
                errors.append(f"Skipped large file: {file_path}")
                continue
            classified = _classify_file(pipeline, file_path, dir_path, max_file_size)
        except OSError as e:
            errors.append(f"Cannot read {file_path}: {e}")
            continue

        if classified is None:
            logger.debug("Skipped binary file %s", file_path)
            continue
        found, lines = classified
        candidates.extend(found)
        scanned_files += 1
        total_lines += lines

    return ScanResult(
        candidates=candidates,
        scanned_files=scanned_files,
        total_lines=total_lines,
        duration_ms=(time.time() - start_time) * 1000,
        errors=errors,
    )


def scan_file(
    filepath: str | Path,
    pipeline: Optional[ClassificationPipeline] = None,
    max_file_size: int = DEFAULT_MAX_FILE_SIZE,
) -> ScanResult:
    """
    Scan a single file for leaked provider keys.

    Example:
        >>> result = scan_file("config.env")
        >>> if result.found_secrets:
        ...     print(f"Found {len(result.candidates)} keys")
    """
    start_time = time.time()
    file_path = Path(filepath)

    if not file_path.is_file():
        return ScanResult(errors=[f"File not found: {filepath}"])

    pipeline = pipeline or ClassificationPipeline()
    try:
        if file_path.stat().st_size > max_file_size:
            return ScanResult(errors=[f"Skipped large file: {filepath}"])
        classified = _classify_file(pipeline, file_path, file_path.parent, max_file_size)
    except OSError as e:
        return ScanResult(
            duration_ms=(time.time() - start_time) * 1000,
            errors=[f"Error scanning file: {e}"],
        )

    if classified is None:
        return ScanResult(duration_ms=(time.time() - start_time) * 1000)
    found, lines = classified
    return ScanResult(
        candidates=found,
        scanned_files=1,
        total_lines=lines,
        duration_ms=(time.time() - start_time) * 1000,
    )


__all__ = ["scan_directory", "scan_file", "ScanResult"]
