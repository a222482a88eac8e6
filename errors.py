"""
Exception types for the chatbot backend.

Every error carries the HTTP status the request boundary should answer with;
anything that is not a ChatbotError is answered with a generic 500.
"""


class ChatbotError(Exception):
    """Base class for errors rendered as {success: false, message}"""
    status_code = 500
    default_message = "Internal error"

    def __init__(self, message: str = None, status_code: int = None):
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)


class ConfigError(ChatbotError):
    default_message = "Invalid configuration"


# Company data
class NotFoundError(ChatbotError):
    default_message = "Company data file not found"


class ParseError(ChatbotError):
    default_message = "Company data is not valid JSON"


# Completion API
class TransportError(ChatbotError):
    default_message = "Could not reach the completion API"


class UpstreamStatusError(ChatbotError):
    default_message = "Completion API returned an error status"

    def __init__(self, http_code: int, message: str = None):
        self.http_code = http_code
        super().__init__(message or f"API responded with HTTP code {http_code}")


class UpstreamShapeError(ChatbotError):
    default_message = "Unexpected response from the completion API"


class UpstreamError(ChatbotError):
    default_message = "Error getting a response from the API"


# Request handling
class InvalidActionError(ChatbotError):
    status_code = 400
    default_message = "Invalid action"


class MissingActionError(ChatbotError):
    status_code = 400
    default_message = "Action not specified"


class EmptyMessageError(ChatbotError):
    status_code = 400
    default_message = "Empty message"


class MethodNotAllowedError(ChatbotError):
    status_code = 405
    default_message = "Method not allowed"
