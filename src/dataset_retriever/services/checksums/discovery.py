from __future__ import annotations

import fnmatch
from pathlib import Path


LINK_FILE_SUFFIX = ".dslink"

# Checksum manifests and partial writes never get a checksum of their own.
_EXCLUDED_PATTERNS = (
    "*.cksum",
    "file_manifest_*.csv",
    "*_manifest_*.csv",
    "*_MANIFEST.txt",
    ".*.tmp",
)


def is_checksum_artifact(path: Path) -> bool:
    name = path.name
    return any(fnmatch.fnmatch(name, pat) for pat in _EXCLUDED_PATTERNS)


def files_in_directory(directory: Path, *, recursive: bool = False) -> list[Path]:
    """Data files below `directory` (sorted for a stable manifest order)."""
    d = Path(directory)
    if not d.is_dir():
        return []
    it = d.rglob("*") if recursive else d.glob("*")
    return sorted(p for p in it if p.is_file() and not is_checksum_artifact(p))


def group_by_directory(files: list[Path]) -> dict[Path, list[Path]]:
    """Group files by parent directory, keeping first-seen order."""
    grouped: dict[Path, list[Path]] = {}
    for f in files:
        grouped.setdefault(Path(f).parent, []).append(Path(f))
    return grouped


def read_link_target(link_file: Path) -> Path | None:
    """Source path stored in a dataset link file (first non-blank line)."""
    try:
        text = Path(link_file).read_text(encoding="utf-8")
    except OSError:
        return None
    for line in text.splitlines():
        if line.strip():
            return Path(line.strip())
    return None


def data_file_for(path: Path) -> tuple[Path, Path]:
    """(record path, content path) for a file in a target directory.

    A link file is recorded under the name it stands in for, and hashed
    from the file it points to. An unreadable link file (e.g. not yet created
    in preview mode) is hashed as is.
    """
    p = Path(path)
    if p.name.endswith(LINK_FILE_SUFFIX) and len(p.name) > len(LINK_FILE_SUFFIX):
        record_path = p.with_name(p.name[: -len(LINK_FILE_SUFFIX)])
        return record_path, read_link_target(p) or p
    return p, p
