from __future__ import annotations

import os
import time
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path
from typing import Iterator

from dataset_retriever.errors import ChecksumConfigError
from dataset_retriever.services.checksums.formats import (
    ChecksumColumn,
    ChecksumFormat,
    ChecksumMode,
    ManifestParserConfig,
    get_format,
)
from dataset_retriever.services.checksums.hashing import HashComputer
from dataset_retriever.services.checksums.paths import (
    compact_path,
    has_separator,
    normalize_key,
    normalize_separators,
    relative_posix,
)
from dataset_retriever.services.checksums.records import ChecksumRecord
from dataset_retriever.services.notify import Reporter


def _absolute(p: str | Path) -> Path:
    return Path(os.path.abspath(Path(p).expanduser()))


@dataclass(frozen=True)
class DataFile:
    """A file to checksum.

    `path` names the record; `source` is the file whose bytes are hashed
    (differs from `path` only for dataset link files).
    """

    path: Path
    source: Path
    known_sha1: str = ""


@dataclass
class ReconcileResult:
    files_hashed: int = 0
    bytes_hashed: int = 0
    bytes_to_hash: int = 0
    missing_files: list[str] = field(default_factory=list)
    failed_files: list[str] = field(default_factory=list)


class ChecksumStore:
    """Checksum manifest for one target directory.

    Lifecycle: queue files with `add_data_file`, call `load` once, then
    `compute_missing_digests`, then `write` once.
    """

    def __init__(
        self,
        target_directory: str | Path,
        mode: ChecksumMode | str,
        *,
        base_output_directory: str | Path | None = None,
        reference_date: date | datetime | str | None = None,
        parser_config: ManifestParserConfig | None = None,
        reporter: Reporter | None = None,
    ) -> None:
        self.target_directory = _absolute(target_directory)
        self.base_output_directory = _absolute(base_output_directory) if base_output_directory else None
        self.reference_date = reference_date
        self.parser_config = parser_config or ManifestParserConfig()
        self.reporter = reporter or Reporter()

        self.mode: ChecksumMode | None = None
        self.format: ChecksumFormat | None = None
        self.manifest_path: Path | None = None
        self.loaded_from: Path | None = None
        self.config_error = ""

        self.data_files: list[DataFile] = []
        self.records: dict[str, ChecksumRecord] = {}

        self._queued: set[Path] = set()
        self._loaded = False
        self._written = False

        try:
            self.mode = ChecksumMode.parse(mode)
            if self.mode != ChecksumMode.NONE:
                self.format = get_format(self.mode)
                self.manifest_path = self.format.manifest_path(
                    self.target_directory,
                    base_output_directory=self.base_output_directory,
                    reference_date=reference_date,
                )
        except (ChecksumConfigError, ValueError) as e:
            self.format = None
            self.manifest_path = None
            self.config_error = str(e)

    # ------------------------------------------------------------------
    # queue / lookup

    def add_data_file(self, path: str | Path, *, source: str | Path | None = None, known_sha1: str = "") -> None:
        p = _absolute(path)
        if p in self._queued:
            return
        self._queued.add(p)
        self.data_files.append(
            DataFile(path=p, source=_absolute(source) if source else p, known_sha1=str(known_sha1 or "").strip())
        )

    def __len__(self) -> int:
        return len(self.records)

    def iter_records(self) -> Iterator[ChecksumRecord]:
        yield from self.records.values()

    def get(self, relative_path: str) -> ChecksumRecord | None:
        return self.records.get(normalize_key(relative_path))

    def _relative_root(self) -> Path | None:
        """Directory that Variant B keys are relative to.

        The parent of the base output directory when one is configured, else
        the directory holding the manifest, which sibling target directories share.
        """
        if self.base_output_directory is not None:
            return self.base_output_directory.parent
        if self.mode == ChecksumMode.MANIFEST and self.manifest_path is not None:
            return self.manifest_path.parent
        return None

    def key_for(self, path: str | Path) -> str:
        """Relative path key used for a data file in this store's manifest."""
        p = _absolute(path)
        if self.mode == ChecksumMode.MANIFEST:
            root = self._relative_root()
            if root is not None:
                rel = relative_posix(p, root)
                if rel:
                    return rel
        return p.name

    def get_or_create(self, path: str | Path) -> ChecksumRecord:
        p = _absolute(path)
        key = self.key_for(p)
        nk = normalize_key(key)
        rec = self.records.get(nk)
        if rec is None:
            rec = ChecksumRecord(relative_path=key, full_path=str(p))
            self.records[nk] = rec
        elif not rec.full_path:
            rec.full_path = str(p)
        return rec

    # ------------------------------------------------------------------
    # load

    def locate_existing_manifest(self) -> Path | None:
        if self.format is None or self.manifest_path is None:
            return None
        if self.manifest_path.is_file():
            return self.manifest_path

        search_dirs: list[Path] = [self.manifest_path.parent]
        if self.base_output_directory is not None and self.base_output_directory not in search_dirs:
            search_dirs.append(self.base_output_directory)

        for directory in search_dirs:
            if not directory.is_dir():
                continue
            for pattern in self.format.patterns_for(self.target_directory):
                for candidate in sorted(directory.glob(pattern), key=lambda x: x.name, reverse=True):
                    try:
                        if candidate.is_file() and candidate.stat().st_size > 0:
                            return candidate
                    except OSError:
                        continue
        return None

    def load(self) -> bool:
        """Read an existing manifest (if any) into the record map.

        A missing manifest is not a failure; the store simply starts empty.
        """
        if self._loaded:
            raise RuntimeError(f"Checksum file already loaded for {self.target_directory}")
        self._loaded = True

        if self.mode == ChecksumMode.NONE:
            return True
        if self.format is None or self.manifest_path is None:
            self.reporter.warning(
                f"Checksum file name could not be determined for {self.target_directory}: {self.config_error}"
            )
            return False

        manifest = self.locate_existing_manifest()
        if manifest is None:
            self.reporter.status(f"No existing checksum file found for {compact_path(self.target_directory)}")
            return True

        self.reporter.debug("Loading existing checksum file: " + compact_path(manifest))
        try:
            with manifest.open("r", encoding="utf-8-sig", newline="") as f:
                lines = f.read().splitlines()
        except (OSError, UnicodeDecodeError) as e:
            self.reporter.error(f"Error reading checksum file {manifest}", e)
            return False

        self.loaded_from = manifest
        self._parse_lines(lines, self.format.delimiter_for(manifest), manifest)
        return True

    def _parse_lines(self, lines: list[str], delimiter: str, source: Path) -> None:
        fmt = self.format
        assert fmt is not None
        column_map: dict[ChecksumColumn, int] = dict(fmt.fixed_positions)
        header_pending = fmt.has_header

        for line in lines:
            if not line.strip():
                continue
            fields = fmt.split_line(line, delimiter)

            if header_pending:
                header_pending = False
                match = fmt.match_header(fields, self.parser_config)
                if not match.usable:
                    self.reporter.warning(
                        f"The checksum file header line does not contain the expected columns ({source.name}): "
                        f"{line.strip()} (supported headers are: {fmt.supported_header_names()})"
                    )
                    return
                if match.missing:
                    missing = ", ".join(c.value for c in match.missing)
                    self.reporter.debug(f"Checksum file {source.name} has no column for: {missing}")
                column_map = match.column_map
                continue

            name = fmt.strip_marker(self._field(fields, column_map, ChecksumColumn.FILENAME)).strip()
            if not name:
                self.reporter.debug(f"Skipping checksum line without a file name: {line.strip()}")
                continue

            key = normalize_separators(name)
            if self.mode == ChecksumMode.MANIFEST and not has_separator(key):
                key = self._repair_key(key)

            self._add_loaded(
                key,
                md5=self._field(fields, column_map, ChecksumColumn.MD5),
                sha1=self._field(fields, column_map, ChecksumColumn.SHA1),
                source=source,
            )

    def _field(self, fields: list[str], column_map: dict[ChecksumColumn, int], column: ChecksumColumn) -> str:
        idx = column_map.get(column)
        if idx is None or idx >= len(fields):
            return self.parser_config.missing_column_value
        return fields[idx].strip()

    def _add_loaded(self, key: str, *, md5: str, sha1: str, source: Path) -> None:
        nk = normalize_key(key)
        if nk in self.records:
            self.reporter.warning(
                f"Checksum file has multiple entries; skipping duplicate file {key} in {compact_path(source)}"
            )
            return
        self.records[nk] = ChecksumRecord(relative_path=key, md5=md5, sha1=sha1)

    def _repair_key(self, file_name: str) -> str:
        """Expand a bare file name from an older manifest to its path below the base output directory."""
        root = self._relative_root()
        scope = self.base_output_directory or root
        if root is None or scope is None:
            return file_name

        folded = file_name.casefold()
        matches = [d.path for d in self.data_files if d.path.name.casefold() == folded]
        if not matches:
            return file_name
        if len(matches) > 1:
            self.reporter.warning(
                f"Cannot expand {file_name} to a relative path; {len(matches)} queued files share that name"
            )
            return file_name

        match = matches[0]
        if relative_posix(match, scope) is None:
            return file_name
        return relative_posix(match, root) or file_name

    # ------------------------------------------------------------------
    # reconcile

    def _needs_sha1(self, rec: ChecksumRecord) -> bool:
        return not rec.sha1.strip()

    def _needs_md5(self, rec: ChecksumRecord) -> bool:
        return self.format is not None and self.format.computes_md5 and not rec.md5.strip()

    def total_bytes_to_hash(self) -> int:
        total = 0
        for data_file in self.data_files:
            rec = self.get_or_create(data_file.path)
            if not (self._needs_sha1(rec) or self._needs_md5(rec)):
                continue
            try:
                total += data_file.source.stat().st_size
            except OSError:
                continue
        return total

    def compute_missing_digests(
        self,
        hasher: HashComputer | None = None,
        *,
        preview: bool = False,
        force: bool = False,
        progress_interval_sec: float = 3.0,
    ) -> ReconcileResult:
        """Hash every queued file whose digests are still empty."""
        result = ReconcileResult()
        if self.format is None:
            return result

        hasher = hasher or HashComputer()

        for data_file in self.data_files:
            rec = self.get_or_create(data_file.path)
            if data_file.known_sha1 and self._needs_sha1(rec):
                rec.set_sha1(data_file.known_sha1)

        result.bytes_to_hash = self.total_bytes_to_hash()
        last_progress = time.monotonic()

        for data_file in self.data_files:
            rec = self.get_or_create(data_file.path)
            want_sha1 = force or self._needs_sha1(rec)
            want_md5 = self.format.computes_md5 and (force or self._needs_md5(rec))
            if not (want_sha1 or want_md5):
                continue

            if preview:
                if want_sha1:
                    self.reporter.status("Compute SHA-1 sum of " + data_file.path.name)
                if want_md5:
                    self.reporter.status("Compute MD5 sum of " + data_file.path.name)
                continue

            if not data_file.source.is_file():
                self.reporter.warning(f"File not found; cannot compute the checksums of {data_file.source}")
                result.missing_files.append(str(data_file.source))
                continue

            try:
                size = data_file.source.stat().st_size
                digests = hasher.compute(data_file.source, md5=want_md5, sha1=want_sha1)
            except OSError as e:
                self.reporter.error(f"Error computing checksums of {data_file.source}", e)
                result.failed_files.append(str(data_file.source))
                continue

            if want_sha1:
                rec.set_sha1(digests.sha1, force=True)
            if want_md5:
                rec.set_md5(digests.md5, base64_value=digests.md5_base64, force=True)
            result.files_hashed += 1
            result.bytes_hashed += size

            if result.bytes_to_hash <= 0 or time.monotonic() - last_progress < progress_interval_sec:
                continue
            self.reporter.progress("Computing checksums", result.bytes_hashed / result.bytes_to_hash * 100)
            last_progress = time.monotonic()

        return result

    # ------------------------------------------------------------------
    # write

    def manifest_relative_path(self, rec: ChecksumRecord) -> str:
        root = self._relative_root()
        if rec.full_path and root is not None:
            rel = relative_posix(rec.full_path, root)
            if rel:
                return rel
        return rec.relative_path or rec.file_name

    def render(self) -> str:
        fmt = self.format
        if fmt is None or self.manifest_path is None:
            raise ChecksumConfigError(
                f"Checksum file name could not be determined for {self.target_directory}: {self.config_error}"
            )

        delimiter = fmt.delimiter_for(self.manifest_path)
        lines: list[str] = []
        if fmt.has_header:
            lines.append(fmt.header_line(delimiter))

        for rec in self.records.values():
            if fmt.mode == ChecksumMode.CKSUM:
                lines.append(f"{rec.sha1}\t{fmt.file_name_marker}{rec.relative_path or rec.file_name}")
                continue
            rec.ensure_md5_base64()
            lines.append(fmt.join_fields([self.manifest_relative_path(rec), rec.md5, rec.sha1], delimiter))

        return "".join(line + "\n" for line in lines)

    def write(self) -> bool:
        """Create or replace the manifest (temp file + rename). Returns False on failure."""
        if self._written:
            raise RuntimeError(f"Checksum file already written for {self.target_directory}")
        self._written = True

        if self.mode == ChecksumMode.NONE:
            self.reporter.warning("Checksum file write requested but the checksum mode is none; nothing to do")
            return True
        if self.format is None or self.manifest_path is None:
            self.reporter.warning(
                f"Checksum file name could not be determined for {self.target_directory}: {self.config_error}"
            )
            return False

        path = self.manifest_path
        tmp = path.with_name(f".{path.name}.tmp")
        try:
            content = self.render()
            if path.exists():
                self.reporter.debug("Updating existing checksum file: " + compact_path(path))
            else:
                self.reporter.debug("Creating new checksum file: " + compact_path(path))
            path.parent.mkdir(parents=True, exist_ok=True)
            with tmp.open("w", encoding="utf-8", newline="\n") as f:
                f.write(content)
            tmp.replace(path)
        except OSError as e:
            self.reporter.error(f"Error writing checksum file {path}", e)
            try:
                tmp.unlink()
            except OSError:
                pass
            return False
        return True
