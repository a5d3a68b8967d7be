class ServiceError(Exception):
    """Base class for failures surfaced to API clients."""

    status_code = 500

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message or self.__class__.__name__


class BadRequest(ServiceError):
    status_code = 400


class Unauthorized(ServiceError):
    status_code = 401


class Forbidden(ServiceError):
    status_code = 403


class NotFound(ServiceError):
    status_code = 404


class Conflict(ServiceError):
    status_code = 409


class InsufficientPoints(Conflict):
    pass


class InternalError(ServiceError):
    status_code = 500


class DeadlineExceeded(ServiceError):
    status_code = 504
