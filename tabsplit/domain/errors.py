"""Error taxonomy for the receipt pipeline."""


class TabsplitError(Exception):
    """Base class for pipeline errors."""


class ValidationError(TabsplitError):
    """Rejected user input (bad file type, missing required field)."""


class ExtractionFailure(TabsplitError):
    """Raised when the extraction backend cannot produce a draft."""


class StorageFailure(TabsplitError):
    """Raised when the object store rejects a write."""


class PersistenceError(TabsplitError):
    """Raised when a receipt store cannot save or load a record."""


class IngestionStateError(TabsplitError):
    """Raised when an operation is not allowed in the current state."""
