# errors.py
"""Exception types shared by the storage client, the AI client and the routes."""


class ToolkitError(Exception):
    """Base class for every error raised on purpose by this app."""


class StorageError(ToolkitError):
    pass


class AIServiceError(ToolkitError):
    pass


class AIRateLimitError(AIServiceError):
    pass


class AIAuthenticationError(AIServiceError):
    pass


class InstructionNotFound(ToolkitError):
    def __init__(self, instruction_id):
        super().__init__(f"Instruction not found: {instruction_id}")
        self.instruction_id = instruction_id


class InstructionValidationError(ToolkitError):
    pass


RATE_LIMIT_MARKERS = ("429", "too many requests", "quota", "rate limit")


def looks_like_rate_limit(message) -> bool:
    """Throttling detected from the message text."""
    text = (message or "").lower()
    return any(marker in text for marker in RATE_LIMIT_MARKERS)
