"""Error kinds raised by insight collection."""


class InsightCollectorError(Exception):
    """Base exception for insight collection failures."""


class TransientStoreError(InsightCollectorError):
    """Raised when the record store or the chunk/milestone store fails an I/O call."""


class MetricKindValidationError(InsightCollectorError):
    """Raised when an unrecognized metric kind or granularity is requested."""


class DeploymentFetchError(InsightCollectorError):
    """Raised when the paginated deployment range fetch cannot complete."""
