from typing import Optional

from fastapi import HTTPException, status


class AppError(HTTPException):
    pass


def bad_request(code: str, message: str):
    raise AppError(status_code=status.HTTP_400_BAD_REQUEST, detail={"code": code, "message": message})

def unauthorized(message: str = "Unauthorized", code: str = "UNAUTHORIZED"):
    raise AppError(status_code=status.HTTP_401_UNAUTHORIZED, detail={"code": code, "message": message})

def forbidden(code: str, message: str):
    raise AppError(status_code=status.HTTP_403_FORBIDDEN, detail={"code": code, "message": message})

def conflict(code: str, message: str, **extra):
    raise AppError(status_code=status.HTTP_409_CONFLICT, detail={"code": code, "message": message, **extra})

def not_found(code: str, message: str):
    raise AppError(status_code=status.HTTP_404_NOT_FOUND, detail={"code": code, "message": message})

def too_many_requests(code: str, message: str, retry_after: Optional[int] = None):
    headers = {"Retry-After": str(retry_after)} if retry_after else None
    raise AppError(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        detail={"code": code, "message": message, "retry_after": retry_after},
        headers=headers,
    )


# ------------------------------------------------------------
# Domain-Fehler (keine HTTP-Fehler, werden nicht abgefangen)
# ------------------------------------------------------------
class DeviceInvariantError(RuntimeError):
    """Geräte-Tabelle in einem Zustand, der nie entstehen darf (z. B. zwei aktive Geräte)."""


class DeviceOwnershipConflict(DeviceInvariantError):
    """Gerätezeile gehört einem anderen User als behauptet."""
