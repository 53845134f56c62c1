"""Explicit success/failure envelope returned by every computation step.

Business failures are returned, never raised. Failure kinds still subclass
`Exception` so the outermost boundary can re-raise the ones it does not map
(`render_error_response`).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, Iterable, List, Mapping, Sequence, TypeVar, Union

T = TypeVar("T")
U = TypeVar("U")


class BaseFailure(Exception):
    """Root of every failure kind carried by a `Failure`."""

    code: str = "failure"


class NotFoundFailure(BaseFailure):
    def __init__(self, resource: str):
        self.resource = resource
        self.code = f"{resource}_not_found"
        super().__init__(self.code)


class ValidationFailure(BaseFailure):
    """One or more field/reason pairs (malformed or out-of-range input)."""

    code = "validation_errors"

    def __init__(self, messages: Mapping[str, Sequence[str]]):
        self.messages: Dict[str, List[str]] = {k: list(v) for k, v in messages.items()}
        super().__init__(self.code)

    def __str__(self) -> str:
        parts = [f"{k}: {', '.join(v)}" for k, v in self.messages.items()]
        return f"{self.code} ({'; '.join(parts)})"


class ForbiddenFailure(BaseFailure):
    def __init__(self, code: str):
        self.code = code
        super().__init__(code)


class MethodNotAllowedFailure(BaseFailure):
    def __init__(self, code: str):
        self.code = code
        super().__init__(code)


class ServiceFailure(BaseFailure):
    """Unexpected failure; not mapped at the boundary."""

    def __init__(self, code: str, error_message: str = ""):
        self.code = code
        self.error_message = error_message
        super().__init__(f"{code}: {error_message}" if error_message else code)


@dataclass(frozen=True)
class Success(Generic[T]):
    value: T


@dataclass(frozen=True)
class Failure:
    error: BaseFailure


Result = Union[Success[T], Failure]


def is_success(result: Result[Any]) -> bool:
    return isinstance(result, Success)


def is_failure(result: Result[Any]) -> bool:
    return isinstance(result, Failure)


def validation_failure(messages: Mapping[str, Sequence[str]]) -> Failure:
    return Failure(ValidationFailure(messages))


def unwrap(result: Result[T]) -> T:
    """Return the success value or raise the carried failure."""
    if isinstance(result, Failure):
        raise result.error
    return result.value


def then(result: Result[T], fn: Callable[[T], Result[U]]) -> Result[U]:
    """Chain a step; a Failure is passed through untouched."""
    if isinstance(result, Failure):
        return result
    return fn(result.value)


def collect(results: Iterable[Result[T]]) -> Result[List[T]]:
    """First failure wins; otherwise a Success with every value in order."""
    values: List[T] = []
    for r in results:
        if isinstance(r, Failure):
            return r
        values.append(r.value)
    return Success(values)


def render_error_response(error: BaseFailure) -> Dict[str, Any]:
    """Map a failure to the response payload an API adapter would send.

    Failure kinds that are not business errors are re-raised unchanged.
    """
    if isinstance(error, NotFoundFailure):
        return {"status": 404, "error": "Not Found", "code": error.code}
    if isinstance(error, MethodNotAllowedFailure):
        return {"status": 405, "error": "Method Not Allowed", "code": error.code}
    if isinstance(error, ValidationFailure):
        return {
            "status": 422,
            "error": "Unprocessable Entity",
            "code": "validation_errors",
            "error_details": error.messages,
        }
    if isinstance(error, ForbiddenFailure):
        return {"status": 403, "error": "Forbidden", "code": error.code}
    raise error


__all__ = [
    "BaseFailure",
    "NotFoundFailure",
    "ValidationFailure",
    "ForbiddenFailure",
    "MethodNotAllowedFailure",
    "ServiceFailure",
    "Success",
    "Failure",
    "Result",
    "is_success",
    "is_failure",
    "validation_failure",
    "unwrap",
    "then",
    "collect",
    "render_error_response",
]
