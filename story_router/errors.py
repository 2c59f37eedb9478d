"""Exception hierarchy for the provider orchestration layer."""
from __future__ import annotations

from typing import List, Optional, Sequence


class RouterError(Exception):
    """Base class for every error raised by the router core."""


class EngineNotInitializedError(RouterError):
    def __init__(self, state: str) -> None:
        super().__init__(f"AI engine not initialized (state: {state})")
        self.state = state


class ConfigurationError(RouterError):
    """Raised when provider configuration cannot be loaded."""


class DuplicateProviderError(RouterError):
    def __init__(self, provider_name: str) -> None:
        super().__init__(f"Provider already registered: {provider_name}")
        self.provider_name = provider_name


class UnknownProviderTypeError(RouterError):
    def __init__(self, provider_type: str, provider_name: str) -> None:
        super().__init__(f"Unknown provider type {provider_type!r} for {provider_name}")
        self.provider_type = provider_type
        self.provider_name = provider_name


class NoSuitableProviderError(RouterError):
    def __init__(self, request_type: str) -> None:
        super().__init__(f"No suitable AI provider available for request type: {request_type}")
        self.request_type = request_type


class ProviderInitializationError(RouterError):
    def __init__(self, provider_name: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(f"Provider {provider_name} failed to initialize: {cause}")
        self.provider_name = provider_name
        self.cause = cause


class ProviderExecutionError(RouterError):
    def __init__(self, provider_name: str, cause: BaseException) -> None:
        reason = str(cause) or cause.__class__.__name__
        super().__init__(f"[{provider_name}] {reason}")
        self.provider_name = provider_name
        self.cause = cause


class AllProvidersFailedError(RouterError):
    """Raised once the fallback chain for a request is exhausted."""

    def __init__(self, request_type: str, failures: Sequence[ProviderExecutionError]) -> None:
        self.request_type = request_type
        self.failures: List[ProviderExecutionError] = list(failures)
        detail = "; ".join(str(failure) for failure in self.failures)
        super().__init__(f"All providers failed for request type {request_type}: {detail}")

    @property
    def attempted(self) -> List[str]:
        return [failure.provider_name for failure in self.failures]


__all__ = [
    "AllProvidersFailedError",
    "ConfigurationError",
    "DuplicateProviderError",
    "EngineNotInitializedError",
    "NoSuitableProviderError",
    "ProviderExecutionError",
    "ProviderInitializationError",
    "RouterError",
    "UnknownProviderTypeError",
]
