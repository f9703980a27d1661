# market_pipeline/errors.py
# Purpose: one exception family for the jobs; each class knows its HTTP status.


class PipelineError(Exception):
    status_code = 500


class ConfigurationError(PipelineError):
    """A required environment setting is missing or malformed."""
    status_code = 400


class UpstreamError(PipelineError):
    """Quote provider returned an error or an unusable body."""


class UpstreamTimeout(UpstreamError):
    pass


class UpstreamRateLimited(UpstreamError):
    status_code = 429


class PersistenceError(PipelineError):
    """A document store operation failed."""


class DocumentExistsError(PersistenceError):
    pass


class DocumentNotFoundError(PersistenceError):
    pass


class DuplicateDocumentError(PersistenceError):
    """More than one document shares a key that should be unique."""


class NoValidDataError(PipelineError, ValueError):
    pass


class InvalidManipulatorError(PipelineError, ValueError):
    pass


def status_for(exc: BaseException) -> int:
    """HTTP status for any exception (unknown ones are 500)."""
    return getattr(exc, "status_code", 500)
