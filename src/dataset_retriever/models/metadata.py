from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic.aliases import AliasChoices


class DatasetRecord(BaseModel):
    """One dataset as returned by the metadata service (or listed in the YAML file)."""

    model_config = ConfigDict(extra="ignore")

    dataset: str = Field(validation_alias=AliasChoices("dataset", "dataset_name"))
    dataset_id: int = 0
    instrument_class: str = ""
    dataset_directory_path: str = Field(
        default="", validation_alias=AliasChoices("dataset_directory_path", "dataset_folder_path")
    )
    dataset_archive_path: str = Field(
        default="", validation_alias=AliasChoices("dataset_archive_path", "archive_folder_path")
    )
    instrument_data_purged: bool = False
    dataset_in_archive_service: bool = Field(
        default=False, validation_alias=AliasChoices("dataset_in_archive_service", "dataset_in_myemsl")
    )
    dataset_file_name: str = Field(default="", validation_alias=AliasChoices("dataset_file_name", "file_name"))
    dataset_file_sha1: str = Field(default="", validation_alias=AliasChoices("dataset_file_sha1", "file_sha1"))
    dataset_file_size_bytes: int = Field(
        default=0, validation_alias=AliasChoices("dataset_file_size_bytes", "file_size_bytes")
    )


class InstrumentClassRecord(BaseModel):
    model_config = ConfigDict(extra="ignore")

    instrument_class: str = Field(validation_alias=AliasChoices("instrument_class", "name"))
    raw_data_type: str = ""
    is_purgeable: bool = False
    comment: str = ""


class MetadataFile(BaseModel):
    model_config = ConfigDict(extra="ignore")

    datasets: list[DatasetRecord] = Field(default_factory=list)
    instrument_classes: list[InstrumentClassRecord] = Field(default_factory=list)
