from __future__ import annotations

from pathlib import Path
from typing import Any, Iterable, Protocol

import httpx
import yaml
from pydantic import ValidationError

from dataset_retriever.errors import MetadataLookupError
from dataset_retriever.models.dataset import DatasetInfo, InstrumentClassInfo, RawDataType
from dataset_retriever.models.metadata import DatasetRecord, InstrumentClassRecord, MetadataFile
from dataset_retriever.services.notify import Reporter
from dataset_retriever.services.sanitize import redact_text, redact_url


# Names per metadata request; keeps the query string bounded.
BATCH_SIZE = 500


class MetadataSource(Protocol):
    def lookup_datasets(self, names: list[str]) -> list[DatasetRecord]: ...

    def instrument_classes(self) -> list[InstrumentClassRecord]: ...


def _start_of(value: str, n: int = 50) -> str:
    return value if len(value) <= n else value[:n] + " ..."


class HttpMetadataSource:
    """JSON metadata service client.

    - `GET {base_url}/datasets?names=a,b,...` -> list of dataset objects
    - `GET {base_url}/instrument-classes` -> list of instrument class objects
    """

    def __init__(self, base_url: str, *, timeout_sec: float = 25, client: httpx.Client | None = None) -> None:
        self.base_url = str(base_url or "").rstrip("/")
        if not self.base_url:
            raise MetadataLookupError("Metadata service URL is undefined")
        self.timeout_sec = timeout_sec
        self._client = client

    def _get_list(self, path: str, params: dict[str, Any] | None = None) -> list[dict[str, Any]]:
        url = f"{self.base_url}{path}"
        client = self._client or httpx.Client(timeout=self.timeout_sec, follow_redirects=True)
        try:
            r = client.get(url, params=params)
            r.raise_for_status()
            try:
                data = r.json()
            except ValueError:
                raise MetadataLookupError(f"Metadata response is not JSON: {redact_url(url)}") from None
        except httpx.HTTPStatusError as e:
            raise MetadataLookupError(
                f"Metadata request failed: HTTP {e.response.status_code} ({redact_url(url)})"
            ) from None
        except httpx.HTTPError as e:
            raise MetadataLookupError(f"Metadata request failed ({redact_url(url)}): {redact_text(str(e))}") from None
        finally:
            if self._client is None:
                client.close()

        if not isinstance(data, list):
            raise MetadataLookupError(f"Metadata response has unexpected type (expected a list): {redact_url(url)}")
        return [dict(x) for x in data if isinstance(x, dict)]

    def lookup_datasets(self, names: list[str]) -> list[DatasetRecord]:
        if not names:
            return []
        rows = self._get_list("/datasets", params={"names": ",".join(names)})
        return _parse_records(DatasetRecord, rows, f"{self.base_url}/datasets")

    def instrument_classes(self) -> list[InstrumentClassRecord]:
        rows = self._get_list("/instrument-classes")
        return _parse_records(InstrumentClassRecord, rows, f"{self.base_url}/instrument-classes")


class YamlMetadataSource:
    """Offline metadata from a YAML file with `datasets` and `instrument_classes` lists."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._data: MetadataFile | None = None

    def _load(self) -> MetadataFile:
        if self._data is not None:
            return self._data
        try:
            obj = yaml.safe_load(self.path.read_text(encoding="utf-8")) or {}
        except (OSError, yaml.YAMLError) as e:
            raise MetadataLookupError(f"Failed to load metadata YAML: {self.path} ({e})") from None
        if not isinstance(obj, dict):
            raise MetadataLookupError(f"Invalid metadata YAML (expected mapping): {self.path}")
        try:
            self._data = MetadataFile.model_validate(obj)
        except ValidationError as e:
            raise MetadataLookupError(f"Invalid metadata YAML: {self.path} ({e.error_count()} errors)") from None
        return self._data

    def lookup_datasets(self, names: list[str]) -> list[DatasetRecord]:
        wanted = {n.lower() for n in names}
        return [d for d in self._load().datasets if d.dataset.lower() in wanted]

    def instrument_classes(self) -> list[InstrumentClassRecord]:
        return list(self._load().instrument_classes)


def _parse_records(model, rows: list[dict[str, Any]], where: str) -> list:
    out = []
    for row in rows:
        try:
            out.append(model.model_validate(row))
        except ValidationError as e:
            raise MetadataLookupError(f"Invalid metadata record from {redact_url(where)}: {e.error_count()} errors") from None
    return out


def _apply_record(dataset: DatasetInfo, rec: DatasetRecord) -> None:
    if rec.dataset_id > 0:
        dataset.dataset_id = rec.dataset_id
    dataset.instrument_class = rec.instrument_class
    dataset.dataset_directory_path = rec.dataset_directory_path
    dataset.dataset_archive_path = rec.dataset_archive_path
    dataset.instrument_data_purged = rec.instrument_data_purged
    dataset.dataset_in_archive_service = rec.dataset_in_archive_service
    if rec.dataset_file_name:
        dataset.dataset_file_name = rec.dataset_file_name
        dataset.dataset_file_sha1 = rec.dataset_file_sha1.strip().lower()
        dataset.dataset_file_size_bytes = rec.dataset_file_size_bytes


def apply_dataset_metadata(
    datasets: Iterable[DatasetInfo],
    source: MetadataSource,
    *,
    reporter: Reporter | None = None,
    batch_size: int = BATCH_SIZE,
) -> list[DatasetInfo]:
    """Fill in storage paths, instrument class and file hash info for each dataset.

    Returns the unique datasets (first occurrence of each name, case-insensitive).
    Raises `MetadataLookupError` when the source fails.
    """
    reporter = reporter or Reporter()

    by_name: dict[str, DatasetInfo] = {}
    for dataset in datasets:
        key = dataset.dataset_name.lower()
        if key in by_name:
            reporter.warning("Skipping duplicate dataset " + dataset.dataset_name)
            continue
        by_name[key] = dataset

    unique = list(by_name.values())
    for i in range(0, len(unique), batch_size):
        batch = unique[i : i + batch_size]
        names = [d.dataset_name for d in batch]
        reporter.debug(f"Querying dataset metadata, dataset {names[0]}")
        try:
            records = source.lookup_datasets(names)
        except MetadataLookupError as e:
            raise MetadataLookupError(f"{e} (datasets {_start_of(', '.join(names))})") from None

        for rec in records:
            dataset = by_name.get(rec.dataset.lower())
            if dataset is None:
                reporter.warning(f"Dataset {rec.dataset} was returned by the metadata source but not requested")
                continue
            _apply_record(dataset, rec)

    for dataset in unique:
        if dataset.dataset_id <= 0:
            reporter.warning("Dataset not found in the metadata source: " + dataset.dataset_name)

    return unique


def load_instrument_classes(source: MetadataSource) -> dict[str, InstrumentClassInfo]:
    """Instrument class name (lowercase) -> class info."""
    out: dict[str, InstrumentClassInfo] = {}
    for rec in source.instrument_classes():
        name = rec.instrument_class.strip()
        if not name:
            continue
        out[name.lower()] = InstrumentClassInfo(
            instrument_class=name,
            raw_data_type=RawDataType.from_name(rec.raw_data_type),
            is_purgeable=rec.is_purgeable,
            comment=rec.comment,
        )
    return out


def metadata_source_from_settings(
    *, metadata_url: str | None, metadata_yaml: str | Path | None, timeout_sec: float = 25
) -> MetadataSource:
    if metadata_yaml:
        return YamlMetadataSource(metadata_yaml)
    if metadata_url:
        return HttpMetadataSource(metadata_url, timeout_sec=timeout_sec)
    raise MetadataLookupError("No metadata source configured (set a metadata URL or a metadata YAML file)")
