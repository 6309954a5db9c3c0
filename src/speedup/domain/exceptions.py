class SpeedupError(Exception):
    status_code: int = 500

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class UnauthenticatedError(SpeedupError):
    """No acceptable credential was presented."""

    status_code = 401

    def __init__(self, message: str = "Unauthorized") -> None:
        super().__init__(message)


class InvalidCredentialError(SpeedupError):
    """A credential was presented but its signature did not verify."""

    status_code = 403

    def __init__(self, message: str = "Invalid token") -> None:
        super().__init__(message)


class MethodNotAllowedError(SpeedupError):
    status_code = 405

    def __init__(self, allow: str = "POST", message: str = "Method not allowed") -> None:
        self.allow = allow
        super().__init__(message)


class PayloadTooLargeError(SpeedupError):
    """Body exceeded the configured byte limit; ingestion was aborted."""

    status_code = 400

    def __init__(self, limit: int, message: str | None = None) -> None:
        self.limit = limit
        super().__init__(message or f"Payload exceeds maximum size of {limit} bytes")


class MalformedBodyError(SpeedupError):
    """Body could not be parsed as the expected multipart form or JSON document."""

    status_code = 400
