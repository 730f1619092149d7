from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path


class RawDataType(str, Enum):
    UNKNOWN = "unknown"
    DOT_RAW_FILES = "dot_raw_files"
    DOT_D_FOLDERS = "dot_d_folders"
    BRUKER_FT = "bruker_ft"
    BRUKER_TOF_BAF = "bruker_tof_baf"
    DOT_UIMF_FILES = "dot_uimf_files"
    DOT_RAW_FOLDER = "dot_raw_folder"
    DATA_FOLDERS = "data_folders"

    @classmethod
    def from_name(cls, value: str | None) -> "RawDataType":
        s = str(value or "").strip().lower()
        for member in cls:
            if member.value == s:
                return member
        return cls.UNKNOWN


# (suffix, is_directory) of the primary instrument item for supported raw data types.
PRIMARY_ITEM_BY_RAW_DATA_TYPE: dict[RawDataType, tuple[str, bool]] = {
    RawDataType.DOT_RAW_FILES: (".raw", False),
    RawDataType.DOT_RAW_FOLDER: (".raw", True),
    RawDataType.DOT_D_FOLDERS: (".d", True),
    RawDataType.DOT_UIMF_FILES: (".uimf", False),
}

UNSUPPORTED_RAW_DATA_TYPES = frozenset(
    {RawDataType.BRUKER_FT, RawDataType.BRUKER_TOF_BAF, RawDataType.DATA_FOLDERS}
)


@dataclass(frozen=True)
class InstrumentClassInfo:
    instrument_class: str
    raw_data_type: RawDataType
    is_purgeable: bool = False
    comment: str = ""

    def __str__(self) -> str:
        return f"{self.instrument_class}: {self.raw_data_type.value}"


@dataclass
class DatasetInfo:
    dataset_name: str
    target_dataset_name: str = ""
    target_directory: str = ""
    dataset_id: int = 0
    instrument_class: str = ""
    dataset_directory_path: str = ""
    dataset_archive_path: str = ""
    instrument_data_purged: bool = False
    dataset_in_archive_service: bool = False
    dataset_file_name: str = ""
    dataset_file_sha1: str = ""
    dataset_file_size_bytes: int = 0
    target_directory_files: list[Path] = field(default_factory=list)

    def __hash__(self) -> int:
        return hash(self.dataset_name.lower())

    def __str__(self) -> str:
        return f"Dataset ID {self.dataset_id}: {self.dataset_name}"


@dataclass(frozen=True)
class DatasetFileOrDirectory:
    dataset: DatasetInfo
    source_path: str
    relative_target_path: str
    is_directory: bool = False
    retrieve_from_archive: bool = False

    def __str__(self) -> str:
        kind = "Directory" if self.is_directory else "File"
        return f"{kind}: {self.source_path}"
