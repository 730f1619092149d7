"""
Pytest configuration and shared fixtures for dataset-retriever tests.
"""

import hashlib
import io
from pathlib import Path

import pytest
from rich.console import Console

from dataset_retriever.services.notify import Reporter


@pytest.fixture
def reporter():
    """Reporter writing to an in-memory console (see `console_text`)."""
    console = Console(file=io.StringIO(), width=400, highlight=False, color_system=None)
    return Reporter(console, verbose=True)


def console_text(reporter: Reporter) -> str:
    return reporter.console.file.getvalue()


def write_bytes(path: Path, data: bytes) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    return path


def digests(data: bytes) -> tuple[str, str]:
    """(md5 hex, sha1 hex) of `data`."""
    return hashlib.md5(data).hexdigest(), hashlib.sha1(data).hexdigest()


@pytest.fixture
def data_dir(tmp_path):
    """`<tmp>/out/run1` with two small data files."""
    d = tmp_path / "out" / "run1"
    write_bytes(d / "a.raw", b"alpha data\n")
    write_bytes(d / "b.raw", b"bravo data\n")
    return d
