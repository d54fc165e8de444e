"""Domain-level exceptions for the AI gateway."""


class BadRequestError(ValueError):
    """Raised for client-side invalid requests at the domain layer."""


class UnsupportedProviderError(BadRequestError):
    """Raised when a model identifier names a provider outside the supported set."""


class ProviderError(RuntimeError):
    """Raised when an upstream completion provider fails a call."""

    def __init__(self, provider: str, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code


class MissingCredentialError(ProviderError):
    """Raised when a provider is dispatched to without a configured API key."""


class StreamError(ValueError):
    """Raised by a stream decoder when the upstream body reports or contains an error."""


class SandboxEnvironmentError(RuntimeError):
    """Raised when the sandbox cannot set up or spawn a run."""


class SearchError(RuntimeError):
    """Raised when the upstream search surface is unreachable or unparseable."""
