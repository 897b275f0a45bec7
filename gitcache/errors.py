"""Typed exceptions for gitcache."""


class GitCacheError(Exception):
    """Base exception for gitcache failures."""


class ConfigError(GitCacheError):
    """Raised when required environment configuration is missing or invalid."""


class UnsupportedOsError(GitCacheError):
    """Raised when the running platform has no archive naming."""


class ClassifyError(GitCacheError):
    """Raised when a cache source cannot become a restore record."""


class SourceNotFoundError(ClassifyError):
    pass


class KindMismatchError(ClassifyError):
    pass


class NoParentError(ClassifyError):
    pass


class DuplicateNameError(ClassifyError):
    pass


class StagingOverlapError(ClassifyError):
    """Raised for a source that is the staging directory or lies inside it."""


class SnapshotError(GitCacheError):
    """Raised when a snapshot cannot produce any cacheable content."""


class NoSourcesError(SnapshotError):
    pass


class NoRecordsError(SnapshotError):
    pass


class StagingError(GitCacheError):
    """Raised for staging directory guard and cleanup failures."""


class StagingExistsError(StagingError):
    pass


class StagingMissingError(StagingError):
    pass


class StagingRemoveError(StagingError):
    pass


class ManifestError(GitCacheError):
    """Raised when the staged manifest cannot be loaded."""


class ManifestMissingError(ManifestError):
    pass


class ManifestReadError(ManifestError):
    pass


class ManifestMalformedError(ManifestError):
    pass


class ArchiveError(GitCacheError):
    """Raised for zip archive failures."""


class PackError(ArchiveError):
    pass


class UnpackError(ArchiveError):
    pass


class RestoreError(GitCacheError):
    """Raised when a single record cannot be copied back into place."""


class RestoreDestinationMissingError(RestoreError):
    pass


class RestoreCopyError(RestoreError):
    pass


class TransportError(GitCacheError):
    """Raised for WebDAV request failures."""


class RemoteNotFoundError(TransportError):
    """Raised when the remote archive does not exist yet."""


class CollectionSetupError(TransportError):
    """Raised when the remote cache collections cannot be inspected or created."""
