from __future__ import annotations


class RetrieverError(Exception):
    """Base class for errors raised by dataset-retriever."""


class ChecksumConfigError(RetrieverError):
    """Checksum mode or manifest location cannot be used."""


class DirectoryResolutionError(ChecksumConfigError):
    """A directory required to place the checksum manifest cannot be determined."""


class DatasetInfoError(RetrieverError):
    """The dataset info file is missing, empty or lacks required columns."""


class MetadataLookupError(RetrieverError):
    """The metadata source could not resolve dataset details."""


class ArchiveDownloadError(RetrieverError):
    """A purged dataset file could not be downloaded from the archive service."""
