from __future__ import annotations

import base64
import hashlib
from dataclasses import dataclass
from pathlib import Path


_CHUNK_SIZE = 1024 * 1024


@dataclass(frozen=True)
class FileDigests:
    md5: str
    md5_base64: str
    sha1: str


class HashComputer:
    """MD5 / SHA-1 of a file's bytes, read once in chunks."""

    def __init__(self, chunk_size: int = _CHUNK_SIZE) -> None:
        self.chunk_size = chunk_size

    def compute(self, path: Path, *, md5: bool = True, sha1: bool = True) -> FileDigests:
        h_md5 = hashlib.md5() if md5 else None
        h_sha1 = hashlib.sha1() if sha1 else None
        with Path(path).open("rb") as f:
            for chunk in iter(lambda: f.read(self.chunk_size), b""):
                if h_md5 is not None:
                    h_md5.update(chunk)
                if h_sha1 is not None:
                    h_sha1.update(chunk)

        md5_hex = h_md5.hexdigest() if h_md5 is not None else ""
        md5_b64 = base64.b64encode(h_md5.digest()).decode("ascii") if h_md5 is not None else ""
        sha1_hex = h_sha1.hexdigest() if h_sha1 is not None else ""
        return FileDigests(md5=md5_hex, md5_base64=md5_b64, sha1=sha1_hex)

    def sha1(self, path: Path) -> str:
        return self.compute(path, md5=False).sha1

    def md5(self, path: Path) -> str:
        return self.compute(path, sha1=False).md5
