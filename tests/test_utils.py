"""Tests for file loading, notebooks and path filters."""
from __future__ import annotations

import json
from pathlib import Path

import pytest

from Aletheia.utils.file_loader import read_text_file
from Aletheia.utils.notebook import extract_notebook_text, is_notebook_path
from Aletheia.utils.path_filters import (
    load_ignore_patterns,
    severity_hint,
    should_scan_path,
    should_skip_remote_path,
)


class TestNotebook:
    def test_sources_and_outputs_joined(self) -> None:
        notebook = {
            "cells": [
                {"cell_type": "markdown", "source": "# Setup"},
                {
                    "cell_type": "code",
                    "source": ["import os\n", "print(os.environ['KEY'])"],
                    "outputs": [
                        {"output_type": "stream", "text": ["sk-printed\n"]},
                        {"output_type": "execute_result", "data": {"text/plain": "'value'"}},
                    ],
                },
            ]
        }
        text = extract_notebook_text(json.dumps(notebook))
        assert text == "# Setup\n\nimport os\nprint(os.environ['KEY'])\n\nsk-printed\n\n\n'value'"

    def test_invalid_json_returned_raw(self) -> None:
        assert extract_notebook_text("not { json") == "not { json"

    def test_json_without_cells_returned_raw(self) -> None:
        raw = json.dumps({"metadata": {}})
        assert extract_notebook_text(raw) == raw

    def test_is_notebook_path(self) -> None:
        assert is_notebook_path("a/B.IPYNB")
        assert not is_notebook_path("a/b.py")


class TestRemotePaths:
    @pytest.mark.parametrize(
        "path",
        [
            "README.md",
            "docs/notes.txt",
            "package-lock.json",
            "web/node_modules/lib/index.js",
            "tests/test_client.py",
            "examples/quickstart.py",
            "src/Demo.py",
            "",
        ],
    )
    def test_skipped(self, path: str) -> None:
        assert should_skip_remote_path(path)

    @pytest.mark.parametrize("path", ["app/settings.py", ".env", "src/client.js"])
    def test_kept(self, path: str) -> None:
        assert not should_skip_remote_path(path)


@pytest.mark.parametrize(
    "path, hint",
    [
        ("deploy/prod.env", "high"),
        ("config/settings.py", "medium"),
        (".env", "medium"),
        ("src/main.py", "low"),
    ],
)
def test_severity_hint(path: str, hint: str) -> None:
    assert severity_hint(path) == hint


class TestLocalPaths:
    def test_negation_re_includes(self, tmp_path: Path) -> None:
        (tmp_path / ".aletheiaignore").write_text("# comment\n*.env\n!keep.env\n", encoding="utf-8")
        ignores = load_ignore_patterns(tmp_path)
        assert ignores == ["*.env", "!keep.env"]

        for name in ("drop.env", "keep.env"):
            (tmp_path / name).write_text("x", encoding="utf-8")
        assert not should_scan_path(tmp_path / "drop.env", root=tmp_path, ignores=ignores)
        assert should_scan_path(tmp_path / "keep.env", root=tmp_path, ignores=ignores)

    def test_explicit_ignore_file_replaces_default(self, tmp_path: Path) -> None:
        (tmp_path / ".aletheiaignore").write_text("*.py\n", encoding="utf-8")
        extra = tmp_path / "custom.ignore"
        extra.write_text("*.js\n", encoding="utf-8")
        assert load_ignore_patterns(tmp_path, extra) == ["*.js"]

    def test_anchored_pattern(self, tmp_path: Path) -> None:
        nested = tmp_path / "sub" / "secrets.py"
        nested.parent.mkdir()
        nested.write_text("x", encoding="utf-8")
        top = tmp_path / "secrets.py"
        top.write_text("x", encoding="utf-8")

        ignores = ["/secrets.py"]
        assert not should_scan_path(top, root=tmp_path, ignores=ignores)
        assert should_scan_path(nested, root=tmp_path, ignores=ignores)

    def test_binary_extension_skipped(self, tmp_path: Path) -> None:
        image = tmp_path / "logo.png"
        image.write_bytes(b"\x89PNG")
        assert not should_scan_path(image, root=tmp_path, ignores=[])

    def test_outside_root(self, tmp_path: Path) -> None:
        root = tmp_path / "root"
        root.mkdir()
        outside = tmp_path / "other.py"
        outside.write_text("x", encoding="utf-8")
        assert not should_scan_path(outside, root=root, ignores=[])


class TestReadTextFile:
    def test_text(self, tmp_path: Path) -> None:
        path = tmp_path / "a.py"
        path.write_text("héllo\n", encoding="utf-8")
        assert read_text_file(path) == "héllo\n"

    def test_binary(self, tmp_path: Path) -> None:
        path = tmp_path / "a.bin"
        path.write_bytes(b"abc\x00def")
        assert read_text_file(path) is None

    def test_too_large(self, tmp_path: Path) -> None:
        path = tmp_path / "a.py"
        path.write_text("x" * 50, encoding="utf-8")
        assert read_text_file(path, max_bytes=10) is None

    def test_notebook_flattened(self, tmp_path: Path) -> None:
        path = tmp_path / "n.ipynb"
        path.write_text(json.dumps({"cells": [{"source": "x = 1"}]}), encoding="utf-8")
        assert read_text_file(path) == "x = 1"
