from __future__ import annotations

import shutil
import tempfile
from pathlib import Path
from urllib.parse import quote

import httpx

from dataset_retriever.errors import ArchiveDownloadError
from dataset_retriever.services.notify import Reporter
from dataset_retriever.services.sanitize import redact_url


# The download drive must keep this much free space after the file lands.
MINIMUM_FREE_SPACE_BYTES = 5 * 1024 * 1024 * 1024


def bytes_to_human(n: int) -> str:
    units = ["B", "KB", "MB", "GB", "TB"]
    v = float(n)
    for u in units:
        if v < 1024.0 or u == units[-1]:
            return f"{v:.1f}{u}" if u != "B" else f"{int(v)}B"
        v /= 1024.0
    return f"{v:.1f}TB"


def validate_free_space(directory: Path, file_size_bytes: int) -> None:
    required = MINIMUM_FREE_SPACE_BYTES + max(0, int(file_size_bytes))
    try:
        free = shutil.disk_usage(directory).free
    except OSError as e:
        raise ArchiveDownloadError(f"Unable to determine the free disk space for {directory}: {e}") from None
    if free < required:
        raise ArchiveDownloadError(
            f"Target drive has insufficient free space to download a {bytes_to_human(file_size_bytes)} file "
            f"to {directory}; {bytes_to_human(free)} free, {bytes_to_human(required)} required"
        )


class ArchiveClient:
    """Downloads files of purged datasets: `GET {base_url}/files/{dataset_id}/{file_name}`."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout_sec: float = 60,
        download_directory: str | Path | None = None,
        client: httpx.Client | None = None,
        reporter: Reporter | None = None,
    ) -> None:
        self.base_url = str(base_url or "").rstrip("/")
        self.timeout_sec = timeout_sec
        self.download_directory = Path(download_directory) if download_directory else Path(tempfile.gettempdir())
        self._client = client
        self.reporter = reporter or Reporter()

    def file_url(self, dataset_id: int, file_name: str) -> str:
        return f"{self.base_url}/files/{int(dataset_id)}/{quote(file_name)}"

    def download(self, dataset_id: int, file_name: str, *, expected_size_bytes: int = 0) -> Path:
        """Stream one file into the download directory and return its local path."""
        if not self.base_url:
            raise ArchiveDownloadError("Archive service URL is undefined; cannot retrieve " + file_name)

        url = self.file_url(dataset_id, file_name)
        self.download_directory.mkdir(parents=True, exist_ok=True)
        out_path = self.download_directory / file_name
        tmp_out = out_path.with_name(out_path.name + ".part")

        client = self._client or httpx.Client(timeout=self.timeout_sec, follow_redirects=True)
        try:
            with client.stream("GET", url) as r:
                r.raise_for_status()
                size = int(r.headers.get("content-length") or expected_size_bytes or 0)
                validate_free_space(self.download_directory, size)
                self.reporter.status(f"Retrieving file {file_name} from the archive for Dataset ID {dataset_id}")
                with tmp_out.open("wb") as f:
                    for chunk in r.iter_bytes():
                        f.write(chunk)
            tmp_out.replace(out_path)
        except httpx.HTTPStatusError as e:
            tmp_out.unlink(missing_ok=True)
            raise ArchiveDownloadError(
                f"Archive request failed: HTTP {e.response.status_code} ({redact_url(url)})"
            ) from None
        except httpx.HTTPError as e:
            tmp_out.unlink(missing_ok=True)
            raise ArchiveDownloadError(f"Archive request failed ({redact_url(url)}): {e}") from None
        except (OSError, ArchiveDownloadError):
            tmp_out.unlink(missing_ok=True)
            raise
        finally:
            if self._client is None:
                client.close()

        return out_path
