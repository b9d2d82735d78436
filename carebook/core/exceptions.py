"""
HTTP-facing error taxonomy.

Every error raised by the services maps to exactly one status code:

    UnauthenticatedError  401  missing, invalid or expired token
    ForbiddenError        403  authenticated but denied by policy
    NotFoundError         404  no such appointment / actor / window
    ConflictError         409  slot taken or illegal state transition
    ValidationError       400  input the schemas accept but the domain rejects
"""
from fastapi import HTTPException, status


class UnauthenticatedError(HTTPException):
    def __init__(self, detail: str = "Could not validate credentials"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )


class ForbiddenError(HTTPException):
    def __init__(self, detail: str = "Not enough permissions"):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail,
        )


class NotFoundError(HTTPException):
    def __init__(self, detail: str = "Resource not found"):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=detail,
        )


class ConflictError(HTTPException):
    def __init__(self, detail: str = "Request conflicts with current state"):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail,
        )


class SlotConflictError(ConflictError):
    def __init__(self, detail: str = "Clinician is not available at that date and time"):
        super().__init__(detail)


class TerminalStateError(ConflictError):
    def __init__(self, current_status: str):
        self.current_status = current_status
        super().__init__(f"Appointment is already {current_status}; no further changes are allowed")


class InvalidTransitionError(ConflictError):
    def __init__(self, current_status: str, target_status: str, detail: str = None):
        self.current_status = current_status
        self.target_status = target_status
        super().__init__(
            detail or f"Cannot move appointment from {current_status} to {target_status}"
        )


class ValidationError(HTTPException):
    def __init__(self, detail: str = "Invalid request data"):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail,
        )
