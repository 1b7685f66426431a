class CourtBatchError(Exception):
    """Base error for all user-facing courtbatch exceptions."""


class ConfigurationError(CourtBatchError):
    """Raised when configuration is invalid or incomplete."""


class ProjectNotInitializedError(CourtBatchError):
    """Raised when .courtbatch metadata is missing."""


class ValidationError(CourtBatchError):
    """Raised when caller input fails validation."""


class StructuralFormatError(CourtBatchError):
    """Raised when a PDF manifest does not have the expected report layout."""


class HeaderFormatError(StructuralFormatError):
    """Raised when the manifest header block cannot be recognized."""


class DuplicateImportError(CourtBatchError):
    """Raised when every process number of a manifest is already stored."""

    def __init__(self, message: str, *, existing_batch_id: int | None = None) -> None:
        super().__init__(message)
        self.existing_batch_id = existing_batch_id


class BatchNotFoundError(CourtBatchError):
    """Raised when a batch id cannot be resolved."""


class ScrapeError(CourtBatchError):
    """Base error for failures while enriching one process record."""


class SiteStructuralError(ScrapeError):
    """Raised when a fetched page does not have the expected markup."""


class RetrySentinelExhaustedError(ScrapeError):
    """Raised when a site keeps answering "not ready" past the retry cap."""


class TransientNetworkError(ScrapeError):
    """Raised on timeouts and connection failures."""


class SessionExpiredError(ScrapeError):
    """Raised when the session token of a system is missing or expired."""


class WorkerBusyError(CourtBatchError):
    """Raised when a worker is asked to run while a run is in progress."""


class BatchRunError(CourtBatchError):
    """Raised when a batch run has to be abandoned and retried by its driver."""
