# salon/errors.py


class SalonError(Exception):
    status_code = 400
    code = "error"

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class InvalidRequest(SalonError):
    status_code = 422
    code = "invalid_request"


class NotFound(SalonError):
    status_code = 404
    code = "not_found"


class Conflict(SalonError):
    """The requested state clashes with data written by someone else."""

    status_code = 409
    code = "conflict"


class Unauthorized(SalonError):
    status_code = 401
    code = "unauthorized"


class Forbidden(SalonError):
    status_code = 403
    code = "forbidden"
