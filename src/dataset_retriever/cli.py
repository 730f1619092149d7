from pathlib import Path

import typer
from rich.console import Console

from dataset_retriever import __version__
from dataset_retriever.config import settings
from dataset_retriever.errors import ChecksumConfigError, MetadataLookupError
from dataset_retriever.services.checksums.formats import ChecksumMode, ManifestParserConfig
from dataset_retriever.services.notify import Reporter

app = typer.Typer(add_completion=False)
console = Console()


def _checksum_mode(value: str | None) -> ChecksumMode:
    try:
        return ChecksumMode.parse(value if value is not None else settings.checksum_mode)
    except ChecksumConfigError as e:
        console.print(f"[red]ERROR[/red] {e}")
        raise typer.Exit(code=2)


def _parser_config() -> ManifestParserConfig:
    return ManifestParserConfig(
        case_sensitive_headers=settings.case_sensitive_headers,
        require_all_columns=settings.require_all_manifest_columns,
    )


def _optional_path(value: Path | None, fallback: str | None) -> Path | None:
    if value is not None:
        return value.expanduser().resolve()
    if fallback:
        return Path(fallback).expanduser().resolve()
    return None


@app.command()
def retrieve(
    dataset_info_file: Path = typer.Argument(..., help="Tab-delimited (or .xlsx) list of datasets to retrieve."),
    output_dir: Path = typer.Option(Path("."), "--output-dir", "-o", help="Directory to copy the files into."),
    checksum_mode: str | None = typer.Option(None, "--checksum-mode", help="none | cksum | manifest"),
    base_output_dir: Path | None = typer.Option(None, help="Base directory for dated file_manifest_*.csv files."),
    manifest_date: str | None = typer.Option(None, help="yyyyMMdd stamp for a new manifest name (default: today)."),
    metadata_url: str | None = typer.Option(None, help="Metadata service base URL."),
    metadata_yaml: Path | None = typer.Option(None, help="Offline metadata YAML (datasets + instrument_classes)."),
    archive_url: str | None = typer.Option(None, help="Archive service base URL for purged datasets."),
    link_files: bool = typer.Option(False, "--link-files", help="Write .dslink files instead of copying."),
    preview: bool = typer.Option(False, help="Show what would be copied / hashed without changing anything."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug messages."),
) -> None:
    """Retrieve dataset files and create or update their checksum files."""
    from dataset_retriever.services.retrieval.archive import ArchiveClient
    from dataset_retriever.services.retrieval.metadata import metadata_source_from_settings
    from dataset_retriever.services.retrieval.retriever import DatasetRetriever, RetrieverOptions

    mode = _checksum_mode(checksum_mode)
    reporter = Reporter(console, verbose=verbose or settings.verbose)

    try:
        source = metadata_source_from_settings(
            metadata_url=metadata_url or settings.metadata_url,
            metadata_yaml=metadata_yaml or settings.metadata_yaml,
            timeout_sec=settings.http_timeout_sec,
        )
    except MetadataLookupError as e:
        console.print(f"[red]ERROR[/red] {e}")
        raise typer.Exit(code=2)

    archive_base = archive_url or settings.archive_url
    archive = (
        ArchiveClient(
            archive_base,
            timeout_sec=settings.http_timeout_sec,
            download_directory=settings.download_directory,
            reporter=reporter,
        )
        if archive_base
        else None
    )

    options = RetrieverOptions(
        checksum_mode=mode,
        base_output_directory=_optional_path(base_output_dir, settings.base_output_directory),
        reference_date=manifest_date or settings.manifest_date,
        parser_config=_parser_config(),
        use_link_files=link_files or settings.use_link_files,
        preview=preview,
        progress_interval_sec=settings.progress_interval_sec,
    )
    retriever = DatasetRetriever(source, options, archive=archive, reporter=reporter)
    result = retriever.retrieve_from_file(dataset_info_file, output_dir)

    if not result.ok:
        raise typer.Exit(code=1)
    if result.checksums is not None and result.checksums.manifests:
        for p in result.checksums.manifests:
            console.print(f"[green]OK[/green] wrote {p}")
    console.print(f"[green]OK[/green] processed {len(result.datasets)} datasets")


@app.command()
def checksums(
    directory: Path = typer.Argument(..., exists=True, file_okay=False, dir_okay=True, help="Directory with data files."),
    checksum_mode: str | None = typer.Option(None, "--checksum-mode", help="cksum | manifest"),
    recursive: bool = typer.Option(False, help="Include files in subdirectories."),
    base_output_dir: Path | None = typer.Option(None, help="Base directory for dated file_manifest_*.csv files."),
    manifest_date: str | None = typer.Option(None, help="yyyyMMdd stamp for a new manifest name (default: today)."),
    preview: bool = typer.Option(False, help="List the checksums that would be computed; write nothing."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug messages."),
) -> None:
    """Create or update the checksum file(s) for an existing directory of data files."""
    from dataset_retriever.services.checksums.updater import update_directory_checksums

    mode = _checksum_mode(checksum_mode)
    if mode == ChecksumMode.NONE:
        console.print("[yellow]WARN[/yellow] checksum mode is none; nothing to do (use --checksum-mode)")
        raise typer.Exit(code=2)

    reporter = Reporter(console, verbose=verbose or settings.verbose)
    result = update_directory_checksums(
        directory.expanduser().resolve(),
        mode,
        recursive=recursive,
        base_output_directory=_optional_path(base_output_dir, settings.base_output_directory),
        reference_date=manifest_date or settings.manifest_date,
        parser_config=_parser_config(),
        preview=preview,
        progress_interval_sec=settings.progress_interval_sec,
        reporter=reporter,
    )
    reporter.show_cached_messages()

    if result.directories == 0 or not result.ok:
        raise typer.Exit(code=1)
    for p in result.manifests:
        console.print(f"[green]OK[/green] wrote {p}")
    console.print(f"[green]OK[/green] hashed {result.files_hashed} files in {result.directories} directories")


@app.command()
def version() -> None:
    """Print the package version."""
    console.print(__version__)
