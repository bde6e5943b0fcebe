"""Domain errors raised by services and mapped to HTTP responses in main."""


class BudgetSyncError(Exception):
    """Base class for errors the API knows how to report."""

    status_code = 500

    def __init__(self, detail: str = ""):
        super().__init__(detail)
        self.detail = detail


class NotFoundError(BudgetSyncError):
    status_code = 404


class ConcurrencyConflictError(BudgetSyncError):
    """Another writer holds or has just claimed the resource."""

    status_code = 409


class LockUnavailableError(BudgetSyncError):
    """The advisory lock could not be obtained within the retry budget."""

    status_code = 503
    retry_after_seconds = 1


class UpstreamServiceError(BudgetSyncError):
    status_code = 502


class ReceiptAnalysisError(UpstreamServiceError):
    pass
