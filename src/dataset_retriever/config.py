from pathlib import Path

from pydantic import Field
from pydantic.aliases import AliasChoices
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_env_files() -> tuple[Path, ...]:
    """Return dotenv candidates for pydantic-settings (missing files are ignored).

    Precedence (later overrides earlier):
    1) repo-root `.env`, `.env.local` (where this package lives during dev)
    2) CWD `.env`, `.env.local` (user overrides)
    """

    def _repo_root() -> Path:
        here = Path(__file__).resolve()
        # Typical dev layout: <repo>/src/dataset_retriever/config.py
        for cand in [here.parent] + list(here.parents):
            if (cand / "pyproject.toml").exists() and (cand / "src").exists():
                return cand
        try:
            return here.parents[2]
        except IndexError:
            return here.parent

    repo_root = _repo_root()
    cwd = Path.cwd()
    return (
        repo_root / ".env",
        repo_root / ".env.local",
        cwd / ".env",
        cwd / ".env.local",
    )


class Settings(BaseSettings):
    # Environment variables override values from the dotenv files.
    model_config = SettingsConfigDict(
        env_prefix="DATASET_RETRIEVER_",
        extra="ignore",
        env_file=_default_env_files(),
        env_file_encoding="utf-8",
    )

    # Metadata source: a JSON service, or a YAML file for offline runs (the YAML file wins when both are set).
    metadata_url: str | None = Field(
        default=None,
        validation_alias=AliasChoices("DATASET_RETRIEVER_METADATA_URL", "DMS_METADATA_URL"),
    )
    metadata_yaml: str | None = None
    archive_url: str | None = Field(
        default=None,
        validation_alias=AliasChoices("DATASET_RETRIEVER_ARCHIVE_URL", "DMS_ARCHIVE_URL"),
    )
    http_timeout_sec: float = 25.0
    download_directory: str | None = None

    # none | cksum | manifest (legacy names cptac / motrpac are accepted too)
    checksum_mode: str = "none"
    # Variant B manifests live here; relative paths in them start at its parent.
    base_output_directory: str | None = None
    # yyyyMMdd (or yyyy-MM-dd) stamp for new manifest names; default is today.
    manifest_date: str | None = None

    case_sensitive_headers: bool = False
    require_all_manifest_columns: bool = False

    use_link_files: bool = False
    progress_interval_sec: float = 3.0
    verbose: bool = False


settings = Settings()
