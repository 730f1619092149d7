from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from pathlib import Path

from dataset_retriever.errors import ArchiveDownloadError, DatasetInfoError, MetadataLookupError
from dataset_retriever.models.dataset import DatasetInfo
from dataset_retriever.services.checksums.formats import ChecksumMode, ManifestParserConfig
from dataset_retriever.services.checksums.updater import ChecksumRunResult, create_checksum_files
from dataset_retriever.services.notify import Reporter
from dataset_retriever.services.retrieval.archive import ArchiveClient
from dataset_retriever.services.retrieval.copy import CopyResult, FileCopier
from dataset_retriever.services.retrieval.dataset_info import load_dataset_info_file
from dataset_retriever.services.retrieval.metadata import (
    MetadataSource,
    apply_dataset_metadata,
    load_instrument_classes,
)
from dataset_retriever.services.retrieval.sources import find_source_items


@dataclass(frozen=True)
class RetrieverOptions:
    checksum_mode: ChecksumMode = ChecksumMode.NONE
    base_output_directory: Path | None = None
    reference_date: date | str | None = None
    parser_config: ManifestParserConfig = field(default_factory=ManifestParserConfig)
    use_link_files: bool = False
    preview: bool = False
    progress_interval_sec: float = 3.0


@dataclass
class RetrieveResult:
    ok: bool = False
    datasets: list[DatasetInfo] = field(default_factory=list)
    copy: CopyResult | None = None
    checksums: ChecksumRunResult | None = None
    warnings: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


class DatasetRetriever:
    """Load datasets, look up their metadata, copy their files, then update checksum files."""

    def __init__(
        self,
        metadata: MetadataSource,
        options: RetrieverOptions | None = None,
        *,
        archive: ArchiveClient | None = None,
        reporter: Reporter | None = None,
    ) -> None:
        self.metadata = metadata
        self.options = options or RetrieverOptions()
        self.archive = archive
        self.reporter = reporter or Reporter()

    def retrieve_from_file(self, dataset_info_file: str | Path, output_directory: str | Path | None) -> RetrieveResult:
        self.reporter.clear()
        try:
            datasets = load_dataset_info_file(dataset_info_file, reporter=self.reporter)
        except DatasetInfoError as e:
            self.reporter.warning(str(e))
            return self._finish(RetrieveResult(ok=False))

        return self._finish(self._retrieve(datasets, output_directory))

    def retrieve(self, datasets: list[DatasetInfo], output_directory: str | Path | None) -> RetrieveResult:
        self.reporter.clear()
        return self._finish(self._retrieve(datasets, output_directory))

    def _finish(self, result: RetrieveResult) -> RetrieveResult:
        self.reporter.show_cached_messages()
        result.warnings = list(self.reporter.warnings)
        result.errors = list(self.reporter.errors)
        return result

    def _retrieve(self, datasets: list[DatasetInfo], output_directory: str | Path | None) -> RetrieveResult:
        result = RetrieveResult(datasets=datasets)
        out_dir = Path(output_directory or ".").expanduser().resolve()

        if not out_dir.exists():
            if self.options.preview:
                self.reporter.status("Preview create directory: " + str(out_dir))
            else:
                self.reporter.status("Creating the output directory: " + str(out_dir))
                out_dir.mkdir(parents=True, exist_ok=True)

        try:
            result.datasets = apply_dataset_metadata(datasets, self.metadata, reporter=self.reporter)
            needs_classes = any(not d.dataset_file_name and d.dataset_id > 0 for d in result.datasets)
            instrument_classes = load_instrument_classes(self.metadata) if needs_classes else {}
        except MetadataLookupError as e:
            self.reporter.error(str(e))
            return result

        items = find_source_items(result.datasets, instrument_classes, reporter=self.reporter)

        copier = FileCopier(
            out_dir,
            use_link_files=self.options.use_link_files,
            preview=self.options.preview,
            archive=self.archive,
            progress_interval_sec=self.options.progress_interval_sec,
            reporter=self.reporter,
        )
        try:
            result.copy = copier.copy_all(items)
        except (OSError, ArchiveDownloadError) as e:
            self.reporter.error("Error copying dataset files", e)
            return result

        if self.options.checksum_mode == ChecksumMode.NONE:
            result.ok = not self.reporter.errors
            return result

        base = self.options.base_output_directory or out_dir
        result.checksums = create_checksum_files(
            [d for d in result.datasets if d.dataset_id > 0 or d.target_directory_files],
            self.options.checksum_mode,
            base_output_directory=base,
            reference_date=self.options.reference_date,
            parser_config=self.options.parser_config,
            preview=self.options.preview,
            progress_interval_sec=self.options.progress_interval_sec,
            reporter=self.reporter,
        )
        result.ok = result.checksums.ok and not self.reporter.errors
        return result
