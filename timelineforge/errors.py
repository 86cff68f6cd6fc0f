"""
Error taxonomy shared by the API and the agents.

Each error carries the HTTP status it maps to and the message that is safe
to show a caller. Anything that is not a TimelineForgeError is reported as a
generic 500.
"""
from typing import Optional

GENERIC_ERROR_MESSAGE = "An error occurred processing your request"


class TimelineForgeError(Exception):
    status_code = 500
    public_message = GENERIC_ERROR_MESSAGE

    def __init__(self, message: Optional[str] = None, *, public_message: Optional[str] = None):
        super().__init__(message or public_message or self.public_message)
        if public_message is not None:
            self.public_message = public_message


class AuthenticationError(TimelineForgeError):
    status_code = 401
    public_message = "Authentication required"


class AuthorizationError(TimelineForgeError):
    status_code = 403
    public_message = "Access denied"


class ValidationError(TimelineForgeError):
    status_code = 400
    public_message = "Invalid request parameters"


class NotFoundError(TimelineForgeError):
    status_code = 404
    public_message = "Not found"


class UpstreamServiceError(TimelineForgeError):
    """Search/LLM provider failure or missing provider configuration.

    The message is for the server log only; callers get the generic 500.
    """
    status_code = 500
    public_message = GENERIC_ERROR_MESSAGE
