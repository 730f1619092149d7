from __future__ import annotations

import csv
import glob
import io
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from pathlib import Path
from typing import Any

from dataset_retriever.errors import ChecksumConfigError
from dataset_retriever.services.checksums.paths import manifest_date_stamp, parent_directory


class ChecksumMode(str, Enum):
    NONE = "none"
    # `<dir>.cksum` beside the target directory; `SHA1<TAB>*name` lines (sha1sum style).
    CKSUM = "cksum"
    # Dated `file_manifest_<yyyyMMdd>.csv` in the base output directory; file_name,md5,sha1.
    MANIFEST = "manifest"

    @classmethod
    def parse(cls, value: Any) -> "ChecksumMode":
        if isinstance(value, ChecksumMode):
            return value
        s = str(value or "").strip().lower()
        if not s:
            return cls.NONE
        mode = _MODE_ALIASES.get(s)
        if mode is None:
            names = ", ".join(m.value for m in cls)
            raise ChecksumConfigError(f"Unrecognized checksum mode: {value} (options are {names})")
        return mode


_MODE_ALIASES: dict[str, ChecksumMode] = {
    "none": ChecksumMode.NONE,
    "off": ChecksumMode.NONE,
    "cksum": ChecksumMode.CKSUM,
    "sha1sum": ChecksumMode.CKSUM,
    "cptac": ChecksumMode.CKSUM,
    "manifest": ChecksumMode.MANIFEST,
    "motrpac": ChecksumMode.MANIFEST,
}


class ChecksumColumn(str, Enum):
    FILENAME = "file_name"
    MD5 = "md5"
    SHA1 = "sha1"


# Header synonyms (matched case-insensitively unless the parser config says otherwise).
MANIFEST_COLUMN_NAMES: dict[ChecksumColumn, tuple[str, ...]] = {
    ChecksumColumn.FILENAME: ("file_name", "raw_file", "filename"),
    ChecksumColumn.MD5: ("md5",),
    ChecksumColumn.SHA1: ("sha1", "sha-1"),
}


@dataclass(frozen=True)
class ManifestParserConfig:
    case_sensitive_headers: bool = False
    require_all_columns: bool = False
    missing_column_value: str = ""


@dataclass(frozen=True)
class HeaderMatch:
    column_map: dict[ChecksumColumn, int]
    missing: list[ChecksumColumn]

    @property
    def usable(self) -> bool:
        return bool(self.column_map) and ChecksumColumn.FILENAME in self.column_map


@dataclass(frozen=True)
class ChecksumFormat:
    mode: ChecksumMode
    extension: str
    has_header: bool
    columns: tuple[ChecksumColumn, ...]
    fixed_positions: dict[ChecksumColumn, int] = field(default_factory=dict)
    file_name_marker: str = ""
    computes_md5: bool = False
    search_patterns: tuple[str, ...] = ()

    def delimiter_for(self, manifest_path: str | Path) -> str:
        if self.has_header and str(manifest_path).lower().endswith(".csv"):
            return ","
        return "\t"

    def manifest_path(
        self,
        target_directory: Path,
        *,
        base_output_directory: Path | None = None,
        reference_date: date | datetime | str | None = None,
    ) -> Path:
        target = Path(target_directory)
        if self.mode == ChecksumMode.CKSUM:
            return parent_directory(target) / f"{target.name}{self.extension}"
        if self.mode == ChecksumMode.MANIFEST:
            base = Path(base_output_directory) if base_output_directory else parent_directory(target)
            return base / f"file_manifest_{manifest_date_stamp(reference_date)}{self.extension}"
        raise ChecksumConfigError(f"Unrecognized checksum mode: {self.mode}")

    def patterns_for(self, target_directory: Path) -> list[str]:
        name = Path(target_directory).name
        return [p.format(name=glob.escape(name)) for p in self.search_patterns]

    def header_line(self, delimiter: str) -> str:
        return self.join_fields([c.value for c in self.columns], delimiter)

    def match_header(self, fields: list[str], config: ManifestParserConfig) -> HeaderMatch:
        column_map: dict[ChecksumColumn, int] = {}
        for idx, raw in enumerate(fields):
            token = raw.strip()
            if not config.case_sensitive_headers:
                token = token.lower()
            for column in self.columns:
                if column in column_map:
                    continue
                names = MANIFEST_COLUMN_NAMES[column]
                if not config.case_sensitive_headers:
                    names = tuple(n.lower() for n in names)
                if token in names:
                    column_map[column] = idx
                    break
        missing = [c for c in self.columns if c not in column_map]
        if config.require_all_columns and missing:
            return HeaderMatch(column_map={}, missing=missing)
        return HeaderMatch(column_map=column_map, missing=missing)

    def split_line(self, line: str, delimiter: str) -> list[str]:
        if delimiter == ",":
            rows = list(csv.reader([line], delimiter=delimiter))
            return rows[0] if rows else []
        parts = line.split(delimiter)
        if len(parts) == 1 and not self.has_header:
            # sha1sum also writes `<digest>  *<name>` / `<digest> *<name>`
            parts = line.split(None, 1)
        return parts

    def join_fields(self, values: list[str], delimiter: str) -> str:
        if delimiter == ",":
            buf = io.StringIO()
            csv.writer(buf, delimiter=delimiter, lineterminator="").writerow(values)
            return buf.getvalue()
        return delimiter.join(values)

    def strip_marker(self, file_name: str) -> str:
        if self.file_name_marker and file_name.startswith(self.file_name_marker):
            return file_name[len(self.file_name_marker):]
        return file_name

    @staticmethod
    def supported_header_names() -> str:
        return "   ".join("/".join(MANIFEST_COLUMN_NAMES[c]) for c in ChecksumColumn)


CKSUM_FORMAT = ChecksumFormat(
    mode=ChecksumMode.CKSUM,
    extension=".cksum",
    has_header=False,
    columns=(ChecksumColumn.SHA1, ChecksumColumn.FILENAME),
    fixed_positions={ChecksumColumn.SHA1: 0, ChecksumColumn.FILENAME: 1},
    file_name_marker="*",
    computes_md5=False,
    search_patterns=("{name}.cksum", "{name}*.cksum"),
)

MANIFEST_FORMAT = ChecksumFormat(
    mode=ChecksumMode.MANIFEST,
    extension=".csv",
    has_header=True,
    columns=(ChecksumColumn.FILENAME, ChecksumColumn.MD5, ChecksumColumn.SHA1),
    computes_md5=True,
    search_patterns=("file_manifest_*.csv", "*_manifest_*.csv", "*_MANIFEST.txt"),
)

_FORMATS: dict[ChecksumMode, ChecksumFormat] = {
    ChecksumMode.CKSUM: CKSUM_FORMAT,
    ChecksumMode.MANIFEST: MANIFEST_FORMAT,
}


def get_format(mode: ChecksumMode | str) -> ChecksumFormat:
    m = ChecksumMode.parse(mode)
    fmt = _FORMATS.get(m)
    if fmt is None:
        raise ChecksumConfigError(f"No checksum file format for mode: {m.value}")
    return fmt
