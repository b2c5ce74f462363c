from fastapi import HTTPException, status


class ValidationError(HTTPException):
    def __init__(self, detail: str = "Validation failed"):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


class AuthenticationError(HTTPException):
    def __init__(self, detail: str = "Not authenticated"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )


class InvalidTokenError(AuthenticationError):
    def __init__(self, detail: str = "Invalid token"):
        super().__init__(detail)


class AuthorizationError(HTTPException):
    def __init__(self, detail: str = "Not authorized"):
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


class NotFoundError(HTTPException):
    def __init__(self, detail: str = "Not found"):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class ConflictError(HTTPException):
    def __init__(self, detail: str = "Conflict"):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


class InternalError(HTTPException):
    def __init__(self, detail: str = "Internal server error"):
        super().__init__(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=detail)


# Social graph

class SelfFollowError(ValidationError):
    def __init__(self):
        super().__init__("Cannot follow yourself")


class SelfUnfollowError(ValidationError):
    def __init__(self):
        super().__init__("Cannot unfollow yourself")


class TargetNotFoundError(NotFoundError):
    pass


class AlreadyFollowingError(ConflictError):
    def __init__(self):
        super().__init__("Already following this user")


class NotFollowingError(ConflictError):
    def __init__(self):
        super().__init__("Not following this user")


# Content

class EmptyTextError(ValidationError):
    pass


CREDENTIALS_EXCEPTION = AuthenticationError("Access denied. No token provided.")
USER_NOT_FOUND_EXCEPTION = AuthenticationError("User not found")
