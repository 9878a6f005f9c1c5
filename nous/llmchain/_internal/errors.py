from __future__ import annotations

from dataclasses import dataclass, replace


@dataclass(frozen=True, slots=True)
class ErrorInfo:
    type: str
    message: str
    provider_code: str | None = None
    retryable: bool = False
    step_id: str | None = None
    backend: str | None = None


class LLMChainError(RuntimeError):
    def __init__(self, info: ErrorInfo):
        super().__init__(info.message)
        self.info = info

    @property
    def type(self) -> str:
        return self.info.type

    @property
    def retryable(self) -> bool:
        return self.info.retryable


def with_context(err: LLMChainError, *, step_id: str | None = None, backend: str | None = None) -> LLMChainError:
    """
    Return a copy of `err` annotated with the failing step and/or backend.

    Fields already set on the original are kept.
    """
    info = err.info
    updated = replace(
        info,
        step_id=info.step_id if info.step_id is not None else step_id,
        backend=info.backend if info.backend is not None else backend,
    )
    out = LLMChainError(updated)
    out.__cause__ = err.__cause__
    return out


def unknown_model_error(model_id: str) -> LLMChainError:
    return LLMChainError(ErrorInfo(type="UnknownModel", message=f"unknown model: {model_id}"))


def unsupported_operation_error(message: str) -> LLMChainError:
    return LLMChainError(ErrorInfo(type="UnsupportedOperation", message=message))


def configuration_error(message: str) -> LLMChainError:
    return LLMChainError(ErrorInfo(type="ConfigurationError", message=message))


def translation_error(message: str, provider_code: str | None = None) -> LLMChainError:
    return LLMChainError(ErrorInfo(type="TranslationError", message=message, provider_code=provider_code))


def transport_error(message: str, provider_code: str | None = None, retryable: bool = True) -> LLMChainError:
    return LLMChainError(
        ErrorInfo(type="TransportFailure", message=message, provider_code=provider_code, retryable=retryable)
    )


def auth_error(message: str, provider_code: str | None = None) -> LLMChainError:
    return transport_error(f"authentication failed: {message}", provider_code=provider_code, retryable=False)


def rate_limit_error(message: str, provider_code: str | None = None) -> LLMChainError:
    return transport_error(f"rate limited: {message}", provider_code=provider_code, retryable=True)


def timeout_error(message: str) -> LLMChainError:
    return transport_error(f"timeout: {message}", retryable=True)


def invalid_request_error(message: str, provider_code: str | None = None) -> LLMChainError:
    return LLMChainError(ErrorInfo(type="InvalidRequest", message=message, provider_code=provider_code))


def unresolved_variable_error(name: str) -> LLMChainError:
    return LLMChainError(ErrorInfo(type="UnresolvedVariable", message=f"unresolved variable: {name}"))


def cancelled_error(message: str = "run cancelled") -> LLMChainError:
    return LLMChainError(ErrorInfo(type="Cancelled", message=message))
