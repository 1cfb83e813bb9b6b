from enum import Enum


class ErrorKind(str, Enum):
    UNAUTHORIZED = "unauthorized"
    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"
    CONFLICT = "conflict"
    VALIDATION = "validation"


STATUS_BY_KIND = {
    ErrorKind.UNAUTHORIZED: 401,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.CONFLICT: 409,
    ErrorKind.VALIDATION: 422,
}


class RoomError(Exception):
    """Expected failure of a room operation.

    Carries an `ErrorKind` tag; the HTTP layer turns it into a response with
    the status code of that kind. The message is safe to show to clients.
    """

    kind = ErrorKind.VALIDATION

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    @property
    def status_code(self) -> int:
        return STATUS_BY_KIND[self.kind]

    def to_dict(self) -> dict:
        return {"error": self.message, "kind": self.kind.value}


class Unauthorized(RoomError):
    kind = ErrorKind.UNAUTHORIZED

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message)


class NotFound(RoomError):
    kind = ErrorKind.NOT_FOUND


class Forbidden(RoomError):
    kind = ErrorKind.FORBIDDEN


class Conflict(RoomError):
    kind = ErrorKind.CONFLICT


class ValidationError(RoomError):
    kind = ErrorKind.VALIDATION
