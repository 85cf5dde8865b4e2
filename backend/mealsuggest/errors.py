"""
Typed failures raised by the suggestion engine.

InvalidFilter and ConfigInvalid are raised before any scoring work starts.
ProviderUnavailable is raised after the provider-call retry is exhausted.
An empty catalog is not an error: it is reported through response metadata.
"""

from typing import Optional


class SuggestionEngineError(Exception):
    code = "SUGGEST_000"

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        body = {"code": self.code, "message": self.message}
        if self.details:
            body["details"] = self.details
        return body


class InvalidFilter(SuggestionEngineError):
    code = "SUGGEST_001"


class ConfigInvalid(SuggestionEngineError):
    code = "SUGGEST_002"


class ProviderUnavailable(SuggestionEngineError):
    code = "SUGGEST_003"

    def __init__(self, provider: str, message: str, details: Optional[dict] = None):
        super().__init__(message, details={"provider": provider, **(details or {})})
        self.provider = provider


class SuggestionTimeout(SuggestionEngineError):
    code = "SUGGEST_004"


class RequestCancelled(SuggestionEngineError):
    code = "SUGGEST_005"
