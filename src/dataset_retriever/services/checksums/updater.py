from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path
from typing import Iterable

from dataset_retriever.models.dataset import DatasetInfo
from dataset_retriever.services.checksums.discovery import data_file_for, files_in_directory, group_by_directory
from dataset_retriever.services.checksums.formats import ChecksumMode, ManifestParserConfig
from dataset_retriever.services.checksums.hashing import HashComputer
from dataset_retriever.services.checksums.paths import compact_path
from dataset_retriever.services.checksums.store import ChecksumStore
from dataset_retriever.services.notify import Reporter


@dataclass
class ChecksumRunResult:
    directories: int = 0
    succeeded: int = 0
    files_hashed: int = 0
    bytes_hashed: int = 0
    manifests: list[Path] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.succeeded == self.directories


def _process_store(
    store: ChecksumStore,
    *,
    hasher: HashComputer,
    preview: bool,
    progress_interval_sec: float,
    result: ChecksumRunResult,
) -> bool:
    result.directories += 1
    if not store.load():
        return False

    reconcile = store.compute_missing_digests(
        hasher,
        preview=preview,
        progress_interval_sec=progress_interval_sec,
    )
    result.files_hashed += reconcile.files_hashed
    result.bytes_hashed += reconcile.bytes_hashed

    if preview:
        result.succeeded += 1
        return True

    # Files that could not be hashed keep empty digests; the rest are still saved.
    if not store.write():
        return False
    if store.manifest_path is not None:
        result.manifests.append(store.manifest_path)
    if reconcile.failed_files:
        return False
    result.succeeded += 1
    return True


def create_checksum_files(
    datasets: Iterable[DatasetInfo],
    mode: ChecksumMode | str,
    *,
    base_output_directory: str | Path | None = None,
    reference_date: date | datetime | str | None = None,
    parser_config: ManifestParserConfig | None = None,
    preview: bool = False,
    progress_interval_sec: float = 3.0,
    reporter: Reporter | None = None,
    hasher: HashComputer | None = None,
) -> ChecksumRunResult:
    """Create or update the checksum file of every directory that received dataset files.

    Directories are processed one at a time, in the order they first appear.
    """
    reporter = reporter or Reporter()
    hasher = hasher or HashComputer()
    result = ChecksumRunResult()

    if ChecksumMode.parse(mode) == ChecksumMode.NONE:
        return result

    stores: dict[Path, ChecksumStore] = {}
    for dataset in datasets:
        if not dataset.target_directory_files:
            reporter.warning(f"No target files were found for dataset {dataset.dataset_name}; cannot compute checksums")
            continue

        for directory, files in group_by_directory(dataset.target_directory_files).items():
            store = stores.get(directory)
            if store is None:
                store = ChecksumStore(
                    directory,
                    mode,
                    base_output_directory=base_output_directory,
                    reference_date=reference_date,
                    parser_config=parser_config,
                    reporter=reporter,
                )
                stores[directory] = store

            single_file = len(dataset.target_directory_files) == 1
            for f in files:
                record_path, content_path = data_file_for(f)
                # A stored SHA-1 describes the dataset's primary file, which may have been renamed.
                is_primary = single_file or record_path.name == Path(dataset.dataset_file_name).name
                known = dataset.dataset_file_sha1 if is_primary else ""
                store.add_data_file(record_path, source=content_path, known_sha1=known)

    for directory, store in stores.items():
        if not _process_store(
            store,
            hasher=hasher,
            preview=preview,
            progress_interval_sec=progress_interval_sec,
            result=result,
        ):
            reporter.warning(f"Checksum file update failed for {compact_path(directory)}")

    return result


def update_directory_checksums(
    directory: str | Path,
    mode: ChecksumMode | str,
    *,
    recursive: bool = False,
    base_output_directory: str | Path | None = None,
    reference_date: date | datetime | str | None = None,
    parser_config: ManifestParserConfig | None = None,
    preview: bool = False,
    progress_interval_sec: float = 3.0,
    reporter: Reporter | None = None,
    hasher: HashComputer | None = None,
) -> ChecksumRunResult:
    """Scan an existing directory and bring its checksum file(s) up to date."""
    reporter = reporter or Reporter()
    d = Path(directory)
    files = files_in_directory(d, recursive=recursive)
    if not files:
        reporter.warning(f"No data files found in {d}")
        return ChecksumRunResult()

    scanned = DatasetInfo(dataset_name=d.name, target_directory_files=files)
    return create_checksum_files(
        [scanned],
        mode,
        base_output_directory=base_output_directory,
        reference_date=reference_date,
        parser_config=parser_config,
        preview=preview,
        progress_interval_sec=progress_interval_sec,
        reporter=reporter,
        hasher=hasher,
    )
