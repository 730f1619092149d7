from datetime import date
from pathlib import Path

import pytest

from dataset_retriever.errors import ChecksumConfigError, DirectoryResolutionError
from dataset_retriever.services.checksums.formats import (
    CKSUM_FORMAT,
    MANIFEST_FORMAT,
    ChecksumColumn,
    ChecksumMode,
    ManifestParserConfig,
    get_format,
)
from dataset_retriever.services.checksums.paths import (
    compact_path,
    manifest_date_stamp,
    normalize_key,
    normalize_separators,
    parent_directory,
    relative_posix,
)
from dataset_retriever.services.checksums.records import ChecksumRecord, md5_hex_to_base64


def test_backslash_and_case_resolve_to_same_key():
    assert normalize_key("Sub\\File.txt") == normalize_key("sub/file.txt")
    assert normalize_separators(".//sub\\\\dir/a.raw") == "sub/dir/a.raw"


def test_relative_posix_inside_and_outside(tmp_path):
    base = tmp_path / "out"
    assert relative_posix(base / "run1" / "a.raw", tmp_path) == "out/run1/a.raw"
    assert relative_posix(tmp_path / "elsewhere.raw", base) is None
    assert relative_posix(base, base) is None


def test_parent_directory_of_root_raises():
    with pytest.raises(DirectoryResolutionError):
        parent_directory(Path("/"))


def test_manifest_date_stamp_formats():
    assert manifest_date_stamp(date(2024, 3, 7)) == "20240307"
    assert manifest_date_stamp("2024-03-07") == "20240307"
    assert manifest_date_stamp("20240307") == "20240307"
    assert len(manifest_date_stamp(None)) == 8
    with pytest.raises(ValueError):
        manifest_date_stamp("March 7")


def test_compact_path_keeps_file_name():
    long_path = "/very/" + "long/" * 40 + "dataset_file.raw"
    short = compact_path(long_path, 60)
    assert len(short) <= 60
    assert short.endswith("/dataset_file.raw")
    assert "..." in short


def test_record_normalizes_path_and_keeps_digests():
    rec = ChecksumRecord(relative_path="Sub\\Dir\\File.raw")
    assert rec.relative_path == "Sub/Dir/File.raw"
    assert rec.file_name == "File.raw"

    assert rec.set_sha1("ABCDEF") is True
    assert rec.sha1 == "abcdef"
    assert rec.set_sha1("123456") is False
    assert rec.sha1 == "abcdef"
    assert rec.set_sha1("123456", force=True) is True
    assert rec.sha1 == "123456"


def test_md5_base64_is_derived_from_hex():
    md5_hex = "d41d8cd98f00b204e9800998ecf8427e"
    assert md5_hex_to_base64(md5_hex) == "1B2M2Y8AsgTpgAmY7PhCfg=="
    assert md5_hex_to_base64("not-hex") == ""

    rec = ChecksumRecord(relative_path="a.raw", md5=md5_hex)
    assert rec.ensure_md5_base64() == "1B2M2Y8AsgTpgAmY7PhCfg=="


@pytest.mark.parametrize(
    "value, expected",
    [
        ("", ChecksumMode.NONE),
        ("none", ChecksumMode.NONE),
        ("CPTAC", ChecksumMode.CKSUM),
        ("cksum", ChecksumMode.CKSUM),
        ("MoTrPAC", ChecksumMode.MANIFEST),
        ("manifest", ChecksumMode.MANIFEST),
    ],
)
def test_checksum_mode_aliases(value, expected):
    assert ChecksumMode.parse(value) == expected


def test_unknown_mode_is_a_configuration_error():
    with pytest.raises(ChecksumConfigError):
        ChecksumMode.parse("sha256")
    with pytest.raises(ChecksumConfigError):
        get_format(ChecksumMode.NONE)


def test_cksum_path_is_beside_target_directory(tmp_path):
    target = tmp_path / "out" / "run1"
    assert CKSUM_FORMAT.manifest_path(target) == tmp_path / "out" / "run1.cksum"


def test_manifest_path_is_dated_in_base_directory(tmp_path):
    target = tmp_path / "out" / "run1"
    p = MANIFEST_FORMAT.manifest_path(target, base_output_directory=tmp_path / "out", reference_date="20240102")
    assert p == tmp_path / "out" / "file_manifest_20240102.csv"

    # Without a base directory the target's parent is used.
    p = MANIFEST_FORMAT.manifest_path(target, reference_date="20240102")
    assert p == tmp_path / "out" / "file_manifest_20240102.csv"


def test_delimiter_depends_on_extension():
    assert MANIFEST_FORMAT.delimiter_for("x/file_manifest_20240101.csv") == ","
    assert MANIFEST_FORMAT.delimiter_for("x/study_MANIFEST.txt") == "\t"
    assert CKSUM_FORMAT.delimiter_for("x/run1.cksum") == "\t"


def test_header_synonyms_match_case_insensitively():
    match = MANIFEST_FORMAT.match_header(["Raw_File", "fraction", "SHA-1", "MD5"], ManifestParserConfig())
    assert match.usable
    assert match.column_map == {ChecksumColumn.FILENAME: 0, ChecksumColumn.SHA1: 2, ChecksumColumn.MD5: 3}
    assert match.missing == []


def test_header_match_respects_parser_config():
    strict_case = ManifestParserConfig(case_sensitive_headers=True)
    assert not MANIFEST_FORMAT.match_header(["FILE_NAME", "MD5", "SHA1"], strict_case).usable

    require_all = ManifestParserConfig(require_all_columns=True)
    match = MANIFEST_FORMAT.match_header(["file_name", "sha1"], require_all)
    assert not match.usable
    assert match.missing == [ChecksumColumn.MD5]


def test_csv_fields_are_quoted_only_when_needed():
    line = MANIFEST_FORMAT.join_fields(["out/a,b.raw", "m", "s"], ",")
    assert line == '"out/a,b.raw",m,s'
    assert MANIFEST_FORMAT.split_line(line, ",") == ["out/a,b.raw", "m", "s"]


def test_cksum_accepts_sha1sum_spacing():
    assert CKSUM_FORMAT.split_line("abc  *file1.raw", "\t") == ["abc", "*file1.raw"]
    assert CKSUM_FORMAT.strip_marker("*file1.raw") == "file1.raw"


def test_cksum_patterns_escape_glob_characters():
    assert CKSUM_FORMAT.patterns_for(Path("/x/run[1]")) == ["run[[]1].cksum", "run[[]1]*.cksum"]
