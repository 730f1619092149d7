from __future__ import annotations

import shutil
import time
from dataclasses import dataclass
from pathlib import Path

from dataset_retriever.errors import ArchiveDownloadError
from dataset_retriever.models.dataset import DatasetFileOrDirectory
from dataset_retriever.services.checksums.discovery import LINK_FILE_SUFFIX
from dataset_retriever.services.checksums.paths import compact_path
from dataset_retriever.services.notify import Reporter
from dataset_retriever.services.retrieval.archive import ArchiveClient, bytes_to_human


# Files with the same size and modification times this close are treated as identical.
FILE_TIME_TOLERANCE_SEC = 2.0


def nearly_identical(source: Path, target: Path) -> bool:
    s = source.stat()
    t = target.stat()
    return s.st_size == t.st_size and abs(s.st_mtime - t.st_mtime) < FILE_TIME_TOLERANCE_SEC


@dataclass
class CopyResult:
    datasets_to_copy: int = 0
    total_bytes: int = 0
    bytes_copied: int = 0
    files_copied: int = 0
    files_skipped: int = 0


class FileCopier:
    """Copies (or links) dataset files into the output directory.

    Every file placed in (or already present in) the output tree is appended
    to its dataset's `target_directory_files` for the checksum step.
    """

    def __init__(
        self,
        output_directory: str | Path,
        *,
        use_link_files: bool = False,
        preview: bool = False,
        archive: ArchiveClient | None = None,
        progress_interval_sec: float = 3.0,
        reporter: Reporter | None = None,
    ) -> None:
        self.output_directory = Path(output_directory).expanduser().resolve()
        self.use_link_files = use_link_files
        self.preview = preview
        self.archive = archive
        self.progress_interval_sec = progress_interval_sec
        self.reporter = reporter or Reporter()
        self.result = CopyResult()

    # ------------------------------------------------------------------
    # sizing

    def _target_for(self, item: DatasetFileOrDirectory) -> Path:
        suffix = LINK_FILE_SUFFIX if self.use_link_files and not item.is_directory else ""
        return self.output_directory / (item.relative_target_path + suffix)

    def _children(self, item: DatasetFileOrDirectory) -> list[DatasetFileOrDirectory]:
        source = Path(item.source_path)
        files = sorted(p for p in source.iterdir() if p.is_file())
        dirs = sorted(p for p in source.iterdir() if p.is_dir())
        return [
            DatasetFileOrDirectory(
                dataset=item.dataset,
                source_path=str(p),
                relative_target_path=f"{item.relative_target_path}/{p.name}",
                is_directory=p.is_dir(),
            )
            for p in files + dirs
        ]

    def _bytes_to_copy(self, item: DatasetFileOrDirectory) -> int:
        source = Path(item.source_path)
        if item.is_directory:
            if not source.is_dir():
                return 0
            return sum(self._bytes_to_copy(child) for child in self._children(item))
        if item.retrieve_from_archive:
            return item.dataset.dataset_file_size_bytes if not self._target_for(item).exists() else 0
        if not source.is_file() or self._target_for(item).exists():
            return 0
        return source.stat().st_size

    # ------------------------------------------------------------------
    # copy

    def copy_all(self, items_by_dataset: dict[str, list[DatasetFileOrDirectory]]) -> CopyResult:
        self.result = CopyResult()
        last_total = 0
        for items in items_by_dataset.values():
            for item in items:
                self.result.total_bytes += self._bytes_to_copy(item)
            if self.result.total_bytes > last_total:
                self.result.datasets_to_copy += 1
                last_total = self.result.total_bytes

        if self.result.datasets_to_copy > 0:
            noun = "dataset" if self.result.datasets_to_copy == 1 else "datasets"
            self.reporter.status(
                f"Retrieving data for {self.result.datasets_to_copy} {noun}; "
                f"{bytes_to_human(self.result.total_bytes)} total"
            )
            self.reporter.status("Target directory: " + compact_path(self.output_directory, 200))

        last_progress = time.monotonic()
        for items in items_by_dataset.values():
            for item in items:
                if item.is_directory:
                    self.copy_directory(item)
                else:
                    self.copy_file(item)

                if self.result.total_bytes <= 0 or self.preview:
                    continue
                if time.monotonic() - last_progress < self.progress_interval_sec:
                    continue
                self.reporter.progress("Copying files", self.result.bytes_copied / self.result.total_bytes * 100)
                last_progress = time.monotonic()

        return self.result

    def copy_directory(self, item: DatasetFileOrDirectory) -> None:
        source = Path(item.source_path)
        if not source.is_dir():
            self.reporter.warning("Directory not found, nothing to copy: " + str(source))
            return
        try:
            children = self._children(item)
        except OSError as e:
            self.reporter.error(f"Error listing directory {source}", e)
            return
        for child in children:
            if child.is_directory:
                self.copy_directory(child)
            else:
                self.copy_file(child)

    def copy_file(self, item: DatasetFileOrDirectory) -> None:
        dataset = item.dataset
        source = Path(item.source_path)
        target = self._target_for(item)

        if item.retrieve_from_archive:
            if not self._retrieve_from_archive(item, target):
                self.reporter.warning("Unable to retrieve the file from the archive: " + source.name)
            return

        if not source.is_file():
            self.reporter.warning("File not found, nothing to copy: " + str(source))
            return

        try:
            if target.exists():
                if self.use_link_files:
                    self.reporter.debug("Existing link file found: " + compact_path(target))
                    dataset.target_directory_files.append(target)
                    self.result.files_skipped += 1
                    return
                if nearly_identical(source, target):
                    self.reporter.debug("Skipping existing, identical file: " + compact_path(target))
                    dataset.target_directory_files.append(target)
                    self.result.files_skipped += 1
                    return

            if self.preview:
                verb = "create link file for" if self.use_link_files else "copy"
                joiner = "at" if self.use_link_files else "to"
                self.reporter.status(
                    f"Preview {verb} {compact_path(source)}\n  {joiner} {compact_path(target, 120)}"
                )
            else:
                self._place(source, target)
        except OSError as e:
            self.reporter.error(f"Error copying {source} to {compact_path(target)}", e)
            return

        dataset.target_directory_files.append(target)

    def _place(self, source: Path, target: Path) -> None:
        if not target.parent.is_dir():
            self.reporter.status("Creating missing directory: " + compact_path(target.parent))
            target.parent.mkdir(parents=True, exist_ok=True)

        if self.use_link_files:
            self.reporter.status("Creating link file: " + compact_path(target))
            write_link_file(source, target)
        else:
            self.reporter.status("Retrieving " + compact_path(source))
            tmp_out = target.with_name(f".{target.name}.tmp")
            try:
                shutil.copy2(source, tmp_out)
                tmp_out.replace(target)
            except OSError:
                tmp_out.unlink(missing_ok=True)
                raise
            self.result.files_copied += 1

        self.result.bytes_copied += source.stat().st_size

    def _retrieve_from_archive(self, item: DatasetFileOrDirectory, target: Path) -> bool:
        dataset = item.dataset
        file_name = Path(item.source_path).name

        if self.preview:
            if self.use_link_files:
                self.reporter.status(
                    f"Preview query the archive to create link file {file_name}\n  at {compact_path(target, 120)}"
                )
            else:
                self.reporter.status(f"Preview download {file_name} from the archive\n  to {compact_path(target, 120)}")
            dataset.target_directory_files.append(target)
            return True

        if self.archive is None:
            self.reporter.warning(f"No archive service configured; cannot retrieve {file_name}")
            return False

        try:
            local = self.archive.download(
                dataset.dataset_id, file_name, expected_size_bytes=dataset.dataset_file_size_bytes
            )
            self._place(local, target)
        except ArchiveDownloadError as e:
            self.reporter.error(str(e))
            return False
        except OSError as e:
            self.reporter.error(f"Error retrieving {file_name} from the archive", e)
            return False

        dataset.target_directory_files.append(target)
        if self.use_link_files:
            self.reporter.warning(f"After uploading the data to the target server, delete file {local}")
        else:
            self.reporter.status(f"Deleting file {local} since copied to {compact_path(target.parent)}")
            local.unlink(missing_ok=True)
        return True


def write_link_file(source: Path, target: Path) -> None:
    """Write a `.dslink` file holding the absolute path of `source`."""
    with target.open("w", encoding="utf-8", newline="\n") as f:
        f.write(str(Path(source).resolve()) + "\n")