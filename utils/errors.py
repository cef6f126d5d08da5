"""
Error taxonomy for the generation and save pipeline
"""

from typing import Optional, Union


class StoryStarterError(Exception):
    """Base class for pipeline errors"""


class PromptCompositionError(StoryStarterError):
    """The payload could not be rendered into a prompt"""


class TransportError(StoryStarterError):
    """The generation transport or the upstream provider failed"""

    def __init__(self, message: str, status: Optional[int] = None, body: str = "",
                 retry_after: Optional[int] = None):
        super().__init__(message)
        self.status = status
        self.body = body
        self.retry_after = retry_after

    @property
    def code(self) -> Union[int, str]:
        return self.status if self.status else "UPSTREAM_ERROR"


class RateLimitError(TransportError):
    """Upstream answered 429"""

    def __init__(self, message: str, body: str = "", retry_after: Optional[int] = None):
        super().__init__(message, status=429, body=body, retry_after=retry_after)


class ParseError(StoryStarterError):
    """No JSON object could be extracted from the model response"""


class ValidationError(StoryStarterError):
    """A JSON object was extracted but cannot be turned into a result"""


class PersistenceError(StoryStarterError):
    """The story backend rejected or failed an insert"""

    def __init__(self, message: str, code: Optional[Union[int, str]] = None):
        super().__init__(message)
        self.code = code
