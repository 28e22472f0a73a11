"""
Error taxonomy for report generation.

Validation errors (NotFound, PendingLocation, LimitExceeded) are
user-correctable and surfaced verbatim. ProviderUnavailable is fatal to a
single pipeline invocation. Each carries the HTTP status the API maps it to.
"""


class ReportError(Exception):
    status_code: int = 500
    error: str = "Report generation failed"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(ReportError):
    status_code = 404
    error = "Not found"


class PendingLocation(ReportError):
    status_code = 400
    error = "Pending location verification"


class LimitExceeded(ReportError):
    status_code = 403
    error = "Plan limit reached"


class ProviderUnavailable(ReportError):
    status_code = 502
    error = "Places provider unavailable"


class ReportAlreadyFinalized(ReportError):
    status_code = 409
    error = "Report already finalized"
