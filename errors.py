class ValidationError(ValueError):
    """Malformed user input, rejected before anything is persisted."""


class StorageError(RuntimeError):
    """The persistence layer failed to read or write."""


class ConstraintError(StorageError):
    """A uniqueness, check or foreign-key constraint rejected a write.

    Automated ingestion treats this as "already ingested" rather than as a
    failure worth retrying.
    """
