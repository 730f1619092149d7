from __future__ import annotations

import base64
from dataclasses import dataclass, field

from dataset_retriever.services.checksums.paths import file_name_of, normalize_separators


MD5_HEX_LENGTH = 32
SHA1_HEX_LENGTH = 40


def md5_hex_to_base64(md5_hex: str) -> str:
    """Re-encode a hex MD5 digest as Base64 (empty string in, empty string out)."""
    s = str(md5_hex or "").strip()
    if not s:
        return ""
    try:
        raw = bytes.fromhex(s)
    except ValueError:
        return ""
    return base64.b64encode(raw).decode("ascii")


@dataclass
class ChecksumRecord:
    relative_path: str
    full_path: str = ""
    md5: str = ""
    md5_base64: str = ""
    sha1: str = ""
    file_name: str = field(init=False)

    def __post_init__(self) -> None:
        self.relative_path = normalize_separators(self.relative_path)
        self.file_name = file_name_of(self.relative_path)

    def set_sha1(self, value: str, *, force: bool = False) -> bool:
        if self.sha1 and not force:
            return False
        self.sha1 = str(value or "").strip().lower()
        return True

    def set_md5(self, value: str, *, base64_value: str = "", force: bool = False) -> bool:
        if self.md5 and not force:
            return False
        self.md5 = str(value or "").strip().lower()
        self.md5_base64 = base64_value or md5_hex_to_base64(self.md5)
        return True

    def ensure_md5_base64(self) -> str:
        if not self.md5_base64 and self.md5:
            self.md5_base64 = md5_hex_to_base64(self.md5)
        return self.md5_base64

    def __str__(self) -> str:
        return self.file_name
