from __future__ import annotations


class ConfigurationError(RuntimeError):
    """Fatal startup problem; the process exits with a non-zero status."""


class TransportError(RuntimeError):
    def __init__(
        self,
        message: str,
        *,
        cause: BaseException | None = None,
        status: int | None = None,
        attempts: int = 0,
    ) -> None:
        super().__init__(message)
        self.cause = cause
        self.status = status
        self.attempts = attempts


class TransientHttpStatusError(RuntimeError):
    """Raised inside the transport for 429/5xx so the retry path triggers."""

    def __init__(self, status: int, body_preview: str) -> None:
        super().__init__(f"HTTP {status} - {body_preview}")
        self.status = status
        self.body_preview = body_preview


class InvalidQuoteError(RuntimeError):
    pass


class ProfitModelError(ArithmeticError):
    pass


class DispatchError(RuntimeError):
    def __init__(self, message: str, *, failures: dict[str, str] | None = None) -> None:
        super().__init__(message)
        self.failures = dict(failures or {})
