from __future__ import annotations

from pathlib import PurePosixPath, PureWindowsPath

from dataset_retriever.models.dataset import (
    PRIMARY_ITEM_BY_RAW_DATA_TYPE,
    UNSUPPORTED_RAW_DATA_TYPES,
    DatasetFileOrDirectory,
    DatasetInfo,
    InstrumentClassInfo,
)
from dataset_retriever.services.notify import Reporter


def _name_of(path: str) -> str:
    # Storage paths may come from a Windows share; accept either separator.
    return PureWindowsPath(path).name if "\\" in path else PurePosixPath(path).name


def _join(directory: str, name: str) -> str:
    d = str(directory or "").rstrip("/\\")
    if not d:
        return name
    sep = "\\" if "\\" in d and "/" not in d else "/"
    return f"{d}{sep}{name}"


def default_instrument_item(
    dataset: DatasetInfo,
    instrument_classes: dict[str, InstrumentClassInfo],
    *,
    reporter: Reporter | None = None,
) -> tuple[str, bool] | None:
    """(item name, is_directory) of the primary instrument file for a dataset, or None to skip it."""
    reporter = reporter or Reporter()
    info = instrument_classes.get(dataset.instrument_class.lower())
    if info is None:
        if dataset.dataset_id > 0:
            reporter.warning(
                f"Skipping dataset due to unrecognized instrument class {dataset.instrument_class}: {dataset.dataset_name}"
            )
        return None

    primary = PRIMARY_ITEM_BY_RAW_DATA_TYPE.get(info.raw_data_type)
    if primary is not None:
        suffix, is_directory = primary
        return dataset.dataset_name + suffix, is_directory

    if info.raw_data_type in UNSUPPORTED_RAW_DATA_TYPES:
        reporter.warning(
            f"Skipping dataset due to unsupported raw data type {info.raw_data_type.value} "
            f"for instrument class {info.instrument_class}"
        )
    else:
        reporter.warning(
            f"Skipping dataset due to unrecognized raw data type {info.raw_data_type.value} "
            f"for instrument class {info.instrument_class}"
        )
    return None


def relative_target_path(item_name: str, is_directory: bool, target_dataset_name: str, target_directory: str) -> str:
    """Path of the copied item below the output directory.

    A file keeps its extension when renamed (`Target.mzML` + `x.raw` -> `Target.raw`);
    a directory takes the target name as is.
    """
    target_name = str(target_dataset_name or "").strip()
    if not target_name:
        rel = item_name
    elif is_directory:
        rel = target_name
    else:
        rel = PurePosixPath(target_name).stem + PurePosixPath(item_name).suffix

    target_dir = str(target_directory or "").strip().strip("/\\")
    if not target_dir:
        return rel
    return f"{target_dir.replace(chr(92), '/')}/{rel}"


def find_source_items(
    datasets: list[DatasetInfo],
    instrument_classes: dict[str, InstrumentClassInfo],
    *,
    reporter: Reporter | None = None,
) -> dict[str, list[DatasetFileOrDirectory]]:
    """Dataset name -> items to copy (one primary file or directory per dataset)."""
    reporter = reporter or Reporter()
    out: dict[str, list[DatasetFileOrDirectory]] = {}

    for dataset in datasets:
        if dataset.dataset_file_name.strip():
            item_name, is_directory = _name_of(dataset.dataset_file_name.strip()), False
        else:
            default = default_instrument_item(dataset, instrument_classes, reporter=reporter)
            if default is None:
                continue
            item_name, is_directory = default

        rel = relative_target_path(item_name, is_directory, dataset.target_dataset_name, dataset.target_directory)

        if dataset.instrument_data_purged and dataset.dataset_in_archive_service:
            item = DatasetFileOrDirectory(
                dataset=dataset,
                source_path=item_name,
                relative_target_path=rel,
                is_directory=is_directory,
                retrieve_from_archive=True,
            )
        elif dataset.instrument_data_purged:
            item = DatasetFileOrDirectory(
                dataset=dataset,
                source_path=_join(dataset.dataset_archive_path, item_name),
                relative_target_path=rel,
                is_directory=is_directory,
            )
        else:
            item = DatasetFileOrDirectory(
                dataset=dataset,
                source_path=_join(dataset.dataset_directory_path, item_name),
                relative_target_path=rel,
                is_directory=is_directory,
            )
        out[dataset.dataset_name] = [item]

    return out
