"""Error types and the mapping from errors to process exit codes."""

from __future__ import annotations

from enum import IntEnum
from typing import Iterator, Optional, Sequence, Type, TypeVar

from khelper.models import NAMESPACE_ALL


class ExitCode(IntEnum):
    """Process exit codes."""

    GENERAL = 1
    NOT_FOUND = 2
    AMBIGUOUS = 3
    USAGE = 4
    UNAVAILABLE = 5
    DOCTOR_FINDINGS = 6


class ExitError(Exception):
    """An error carrying the exit code the process should end with."""

    def __init__(self, code: int, message: str = "", cause: Optional[BaseException] = None):
        super().__init__(message)
        self.code = ExitCode(code)
        self.message = message
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause

    def __str__(self) -> str:
        return self.message


def _scope(namespace: str) -> str:
    if namespace == NAMESPACE_ALL:
        return "all namespaces"
    return f'namespace "{namespace}"'


class NotFoundError(Exception):
    """No object matched a target."""

    def __init__(self, namespace: str, target: str, kind: str):
        self.namespace = namespace
        self.target = target
        self.kind = kind
        super().__init__(f'{kind} "{target}" not found in {_scope(namespace)}')


class AmbiguousMatchError(Exception):
    """Several objects matched a target and none was picked."""

    def __init__(self, namespace: str, target: str, kind: str, matches: Sequence[str] = ()):
        self.namespace = namespace
        self.target = target
        self.kind = kind
        self.matches = list(matches)
        text = f'{kind} "{target}" matches multiple objects in {_scope(namespace)}'
        if self.matches:
            text += ": " + ", ".join(self.matches)
        super().__init__(text + "; use --pick")


class InvalidPickError(Exception):
    """A --pick value outside the list of matches."""

    def __init__(self, pick: int, maximum: int):
        self.pick = pick
        self.maximum = maximum
        super().__init__(f"invalid --pick {pick}: must be between 1 and {maximum}")


class InvalidKindError(ValueError):
    """An unsupported target kind."""

    def __init__(self, kind: str = ""):
        self.kind = kind
        super().__init__(f'invalid kind "{kind}"' if kind else "invalid kind")


class MetricsUnavailableError(Exception):
    """The metrics API is not available in the cluster."""

    def __init__(self, message: str = "metrics API unavailable"):
        super().__init__(message)


def wrap_exit_error(code: int, err: Optional[BaseException], message: str, *args) -> ExitError:
    """Wrap an error with a context message and an exit code."""
    text = message % args if args else message
    if err is None:
        return ExitError(code, text)
    if not message:
        return ExitError(code, str(err), cause=err)
    return ExitError(code, f"{text}: {err}", cause=err)


def _chain(err: Optional[BaseException]) -> Iterator[BaseException]:
    seen: set[int] = set()
    while err is not None and id(err) not in seen:
        seen.add(id(err))
        yield err
        err = err.__cause__


_E = TypeVar("_E", bound=BaseException)


def _first(err: Optional[BaseException], kind: Type[_E]) -> Optional[_E]:
    return next((e for e in _chain(err) if isinstance(e, kind)), None)


def exit_code(err: BaseException) -> ExitCode:
    """The exit code the process should use for this error."""
    current: Optional[BaseException] = err
    while True:
        wrapped = _first(current, ExitError)
        if wrapped is None:
            break
        if wrapped.code != ExitCode.GENERAL or wrapped.cause is None:
            return wrapped.code
        current = wrapped.cause

    if _first(current, AmbiguousMatchError) is not None:
        return ExitCode.AMBIGUOUS
    if _first(current, NotFoundError) is not None:
        return ExitCode.NOT_FOUND
    if _first(current, InvalidPickError) is not None:
        return ExitCode.USAGE
    if _first(current, InvalidKindError) is not None:
        return ExitCode.USAGE
    if _first(current, MetricsUnavailableError) is not None:
        return ExitCode.UNAVAILABLE
    return ExitCode.GENERAL