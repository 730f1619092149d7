import httpx
import pytest
import yaml

from dataset_retriever.errors import MetadataLookupError
from dataset_retriever.models.dataset import DatasetInfo, RawDataType
from dataset_retriever.services.retrieval.metadata import (
    HttpMetadataSource,
    YamlMetadataSource,
    apply_dataset_metadata,
    load_instrument_classes,
)
from dataset_retriever.services.sanitize import redact_url


DATASETS = {
    "QC_Shew_01": {
        "dataset": "QC_Shew_01",
        "dataset_id": 101,
        "instrument_class": "LTQ_FT",
        "dataset_folder_path": "/storage/QC_Shew_01",
        "archive_folder_path": "/archive/QC_Shew_01",
        "instrument_data_purged": False,
        "dataset_in_myemsl": True,
        "file_name": "QC_Shew_01.raw",
        "file_sha1": "ABCDEF" + "0" * 34,
        "file_size_bytes": 1024,
        "extra_field": "ignored",
    },
    "QC_Shew_02": {"dataset": "QC_Shew_02", "dataset_id": 102, "instrument_class": "IMS_Agilent_TOF"},
    "QC_Shew_03": {"dataset": "QC_Shew_03", "dataset_id": 103, "instrument_class": "LTQ_FT"},
}


def _client(requests):
    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if request.url.path == "/api/datasets":
            names = request.url.params["names"].split(",")
            return httpx.Response(200, json=[DATASETS[n] for n in names if n in DATASETS])
        if request.url.path == "/api/instrument-classes":
            return httpx.Response(
                200,
                json=[
                    {"instrument_class": "LTQ_FT", "raw_data_type": "dot_raw_files", "is_purgeable": True},
                    {"instrument_class": "IMS_Agilent_TOF", "raw_data_type": "dot_uimf_files"},
                ],
            )
        return httpx.Response(404)

    return httpx.Client(transport=httpx.MockTransport(handler))


def test_http_lookup_is_batched(reporter):
    requests = []
    source = HttpMetadataSource("http://meta.test/api", client=_client(requests))
    datasets = [DatasetInfo(dataset_name=n) for n in ["QC_Shew_01", "QC_Shew_02", "QC_Shew_03"]]

    unique = apply_dataset_metadata(datasets, source, reporter=reporter, batch_size=2)

    assert len(requests) == 2
    assert requests[0].url.params["names"] == "QC_Shew_01,QC_Shew_02"
    assert requests[1].url.params["names"] == "QC_Shew_03"
    first = unique[0]
    assert first.dataset_id == 101
    assert first.dataset_directory_path == "/storage/QC_Shew_01"
    assert first.dataset_archive_path == "/archive/QC_Shew_01"
    assert first.dataset_in_archive_service is True
    assert first.dataset_file_name == "QC_Shew_01.raw"
    assert first.dataset_file_sha1 == "abcdef" + "0" * 34
    assert reporter.warnings == []


def test_duplicates_and_unknown_datasets_are_warned(reporter):
    source = HttpMetadataSource("http://meta.test/api", client=_client([]))
    datasets = [DatasetInfo(dataset_name=n) for n in ["QC_Shew_01", "qc_shew_01", "Missing_DS"]]

    unique = apply_dataset_metadata(datasets, source, reporter=reporter)

    assert [d.dataset_name for d in unique] == ["QC_Shew_01", "Missing_DS"]
    assert "Skipping duplicate dataset qc_shew_01" in reporter.warnings
    assert "Dataset not found in the metadata source: Missing_DS" in reporter.warnings


def test_instrument_classes(reporter):
    source = HttpMetadataSource("http://meta.test/api", client=_client([]))
    classes = load_instrument_classes(source)

    assert classes["ltq_ft"].raw_data_type == RawDataType.DOT_RAW_FILES
    assert classes["ltq_ft"].is_purgeable is True
    assert classes["ims_agilent_tof"].raw_data_type == RawDataType.DOT_UIMF_FILES


def test_http_error_raises_lookup_error(reporter):
    client = httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(500)))
    source = HttpMetadataSource("http://meta.test/api", client=client)

    with pytest.raises(MetadataLookupError) as exc_info:
        apply_dataset_metadata([DatasetInfo(dataset_name="QC_Shew_01")], source, reporter=reporter)

    assert "HTTP 500" in str(exc_info.value)


def test_non_list_response_raises(reporter):
    client = httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(200, json={"error": "x"})))
    source = HttpMetadataSource("http://meta.test/api", client=client)

    with pytest.raises(MetadataLookupError, match="unexpected type"):
        source.instrument_classes()


def test_yaml_source(tmp_path, reporter):
    p = tmp_path / "metadata.yaml"
    p.write_text(
        yaml.safe_dump(
            {
                "datasets": [DATASETS["QC_Shew_01"], DATASETS["QC_Shew_02"]],
                "instrument_classes": [{"name": "LTQ_FT", "raw_data_type": "dot_raw_folder"}],
            }
        ),
        encoding="utf-8",
    )
    source = YamlMetadataSource(p)

    unique = apply_dataset_metadata([DatasetInfo(dataset_name="qc_shew_02")], source, reporter=reporter)
    assert unique[0].dataset_id == 102
    assert load_instrument_classes(source)["ltq_ft"].raw_data_type == RawDataType.DOT_RAW_FOLDER


def test_invalid_yaml_raises(tmp_path):
    p = tmp_path / "metadata.yaml"
    p.write_text("- just\n- a list\n", encoding="utf-8")

    with pytest.raises(MetadataLookupError, match="expected mapping"):
        YamlMetadataSource(p).instrument_classes()


def test_redact_url_hides_credentials():
    assert redact_url("https://user:pw@meta.test/api?token=abc&x=1") == "https://REDACTED@meta.test/api?token=REDACTED&x=1"
