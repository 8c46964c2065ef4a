"""
Error taxonomy for the suitability service.

NotFoundError and ValidationError reach the HTTP layer unchanged.
UpstreamError and ComputationError are raised internally and always absorbed
by a fallback chain before a result is returned.
"""


class FlightWxError(Exception):
    """Base class for errors that carry an HTTP status and a stable code"""

    status_code = 500
    code = "internal_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(FlightWxError):
    """A monitoring point, aircraft or task referenced by id does not exist"""

    status_code = 404
    code = "not_found"


class ValidationError(FlightWxError):
    """Malformed or missing request parameter"""

    status_code = 400
    code = "bad_request"


class UpstreamError(FlightWxError):
    """External weather provider unreachable or returned an unusable payload"""

    status_code = 503
    code = "upstream_unavailable"


class ComputationError(FlightWxError):
    """Grid or projection generation failed"""

    code = "computation_failed"
