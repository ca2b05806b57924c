"""
Error taxonomy shared by every location operation.

Policy outcomes of a ping (paused / throttled / invalid) are NOT errors;
they are returned as ordinary values by the ping pipeline.
"""


class LocationServiceError(Exception):
    code = "internal"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidArgument(LocationServiceError):
    code = "invalid-argument"
    status_code = 400


class Unauthenticated(LocationServiceError):
    code = "unauthenticated"
    status_code = 401


class FailedPrecondition(LocationServiceError):
    code = "failed-precondition"
    status_code = 412


class Unavailable(LocationServiceError):
    code = "unavailable"
    status_code = 503
