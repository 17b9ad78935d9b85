"""Error taxonomy for the storage migration."""


class MigrationError(Exception):
    """Base class for migration errors that are reported as data."""


class ListingError(MigrationError):
    """Bucket or folder enumeration failed."""


class NoSignedUrl(MigrationError):
    """Source backend returned no signed retrieval URL."""


class TransportError(MigrationError):
    """Network or stream failure while moving bytes."""


class StagingFileMissing(MigrationError):
    """The staged copy of an object is not on local disk."""


class BackendRejected(MigrationError):
    """Destination backend refused the request."""


class BucketAlreadyExists(BackendRejected):
    """Destination bucket exists already; treated as success by callers."""


class PersistenceError(MigrationError):
    """Reading or writing a progress record failed."""


class MigrationFatalError(Exception):
    """Fatal error that stops the migration process."""
