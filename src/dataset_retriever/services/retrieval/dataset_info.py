from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Any

from openpyxl import load_workbook as openpyxl_load_workbook

from dataset_retriever.errors import DatasetInfoError
from dataset_retriever.models.dataset import DatasetInfo
from dataset_retriever.services.notify import Reporter


class DatasetInfoColumn(str, Enum):
    DATASET_NAME = "dataset_name"
    TARGET_NAME = "target_name"
    TARGET_DIRECTORY = "target_directory"


DATASET_INFO_COLUMN_NAMES: dict[DatasetInfoColumn, tuple[str, ...]] = {
    DatasetInfoColumn.DATASET_NAME: ("Dataset", "DatasetName", "Dataset Name"),
    DatasetInfoColumn.TARGET_NAME: ("TargetName", "Target Name", "New Name", "DCC_File_Name"),
    DatasetInfoColumn.TARGET_DIRECTORY: ("TargetDirectory", "Target Directory", "DCC_Folder_Name"),
}


def _is_empty(v: Any) -> bool:
    if v is None:
        return True
    if isinstance(v, str) and not v.strip():
        return True
    return False


def _is_empty_row(row: list[Any]) -> bool:
    return all(_is_empty(v) for v in row)


def _cell_text(v: Any) -> str:
    if v is None:
        return ""
    if isinstance(v, float) and v.is_integer():
        return str(int(v))
    return str(v).strip()


def _header_map(header: list[Any]) -> dict[DatasetInfoColumn, int]:
    """Map known columns to their index; the first matching header cell wins."""
    mapping: dict[DatasetInfoColumn, int] = {}
    for idx, h in enumerate(header):
        name = _cell_text(h).lower()
        if not name:
            continue
        for column, names in DATASET_INFO_COLUMN_NAMES.items():
            if column in mapping:
                continue
            if name in (n.lower() for n in names):
                mapping[column] = idx
                break
    return mapping


def _get(hm: dict[DatasetInfoColumn, int], row: list[Any], column: DatasetInfoColumn) -> str:
    idx = hm.get(column)
    if idx is None or idx >= len(row):
        return ""
    return _cell_text(row[idx])


def _read_rows(path: Path) -> list[list[Any]]:
    if path.suffix.lower() == ".xlsx":
        wb = openpyxl_load_workbook(path, read_only=True, data_only=True)
        try:
            ws = wb.worksheets[0]
            return [list(r) for r in ws.iter_rows(values_only=True)]
        finally:
            wb.close()

    text = path.read_text(encoding="utf-8-sig")
    return [line.split("\t") for line in text.splitlines()]


def load_dataset_info_file(path: str | Path, *, reporter: Reporter | None = None) -> list[DatasetInfo]:
    """Read the list of datasets to retrieve.

    The file is tab-delimited (or an `.xlsx` workbook, first sheet) with a
    header row. Recognized header names are listed in `DATASET_INFO_COLUMN_NAMES`;
    other columns are ignored. Raises `DatasetInfoError` when the file cannot
    be used.
    """
    reporter = reporter or Reporter()
    if not str(path or "").strip():
        raise DatasetInfoError("Dataset info file path is undefined; cannot continue")

    p = Path(path).expanduser()
    if not p.is_file():
        raise DatasetInfoError(f"Dataset info file not found: {p.resolve()}")

    try:
        rows = _read_rows(p)
    except (OSError, UnicodeDecodeError, ValueError) as e:
        raise DatasetInfoError(f"Error reading dataset info file {p}: {e}") from e

    datasets: list[DatasetInfo] = []
    hm: dict[DatasetInfoColumn, int] | None = None

    for row in rows:
        if _is_empty_row(row):
            continue

        if hm is None:
            hm = _header_map(row)
            if not hm:
                names = ", ".join("/".join(v) for v in DATASET_INFO_COLUMN_NAMES.values())
                raise DatasetInfoError(f"Dataset info file header has no recognized columns (expected {names}): {p}")
            if DatasetInfoColumn.DATASET_NAME not in hm:
                raise DatasetInfoError("Dataset info file is missing the Dataset name column; unable to continue")
            continue

        name = _get(hm, row, DatasetInfoColumn.DATASET_NAME)
        if not name:
            line = "\t".join(_cell_text(v) for v in row)
            reporter.warning("Skipping line with empty dataset name: " + line)
            continue

        datasets.append(
            DatasetInfo(
                dataset_name=name,
                target_dataset_name=_get(hm, row, DatasetInfoColumn.TARGET_NAME),
                target_directory=_get(hm, row, DatasetInfoColumn.TARGET_DIRECTORY),
            )
        )

    if hm is None:
        raise DatasetInfoError(f"Dataset info file was empty: {p.resolve()}")
    if not datasets:
        raise DatasetInfoError(f"Dataset info file only had a header line: {p.resolve()}")
    return datasets
