"""Error taxonomy shared by every router.

Each error is an ``HTTPException`` so it can be raised from helpers and
dependencies alike; ``backend.main`` renders all of them with the
``{"success": false, "message": ...}`` envelope.
"""

from fastapi import HTTPException, status


class ValidationError(HTTPException):
    """Malformed or out-of-range input."""

    def __init__(self, message: str):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=message)


class Unauthorized(HTTPException):
    """Missing, invalid or expired credentials, or a deactivated account."""

    def __init__(self, message: str = 'Not authorized to access this route'):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=message,
            headers={'WWW-Authenticate': 'Bearer'},
        )


class Forbidden(HTTPException):
    def __init__(self, message: str):
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=message)


class NotFound(HTTPException):
    def __init__(self, message: str):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=message)


class InternalError(HTTPException):
    def __init__(self, message: str = 'Internal server error'):
        super().__init__(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=message)
