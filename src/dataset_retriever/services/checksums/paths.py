from __future__ import annotations

from datetime import date, datetime
from pathlib import Path, PurePosixPath

from dataset_retriever.errors import DirectoryResolutionError


def normalize_separators(path: str) -> str:
    """Return `path` with forward-slash separators and no leading `./`."""
    s = str(path or "").strip().replace("\\", "/")
    while "//" in s:
        s = s.replace("//", "/")
    while s.startswith("./"):
        s = s[2:]
    return s


def normalize_key(path: str) -> str:
    """Lookup key for a relative path: separators normalized, case folded."""
    return normalize_separators(path).casefold()


def file_name_of(path: str) -> str:
    s = normalize_separators(path).rstrip("/")
    return s.rsplit("/", 1)[-1]


def has_separator(path: str) -> bool:
    return "/" in normalize_separators(path)


def relative_posix(full_path: str | Path, base: str | Path) -> str | None:
    """Path of `full_path` relative to `base` (posix form), or None when outside."""
    if not full_path or not base:
        return None
    try:
        rel = Path(full_path).relative_to(Path(base))
    except ValueError:
        return None
    s = PurePosixPath(*rel.parts).as_posix()
    if s in {"", "."}:
        return None
    return s


def parent_directory(directory: Path) -> Path:
    """Parent of `directory`; raises DirectoryResolutionError for a filesystem root."""
    d = Path(directory)
    parent = d.parent
    if parent == d or not d.name:
        raise DirectoryResolutionError(f"Unable to determine the parent directory of {d}")
    return parent


def manifest_date_stamp(reference: date | datetime | str | None = None) -> str:
    """`yyyyMMdd` stamp for dated manifest names (today when `reference` is empty)."""
    if reference is None or (isinstance(reference, str) and not reference.strip()):
        return datetime.now().strftime("%Y%m%d")
    if isinstance(reference, (date, datetime)):
        return reference.strftime("%Y%m%d")
    s = reference.strip()
    for fmt in ("%Y%m%d", "%Y-%m-%d", "%Y/%m/%d"):
        try:
            return datetime.strptime(s, fmt).strftime("%Y%m%d")
        except ValueError:
            continue
    raise ValueError(f"Invalid manifest date (expected YYYYMMDD or YYYY-MM-DD): {reference}")


def compact_path(path: str | Path, max_length: int = 100) -> str:
    """Shorten a long path for console messages, keeping the head and the file name."""
    s = str(path)
    if len(s) <= max_length or max_length < 10:
        return s
    name = Path(s).name
    if len(name) + 4 >= max_length:
        return "..." + s[-(max_length - 3):]
    head = max_length - len(name) - 4
    return f"{s[:head]}...{s[-(len(name) + 1):]}"
