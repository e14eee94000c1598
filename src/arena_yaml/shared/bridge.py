"""Process-wide translation of engine aborts into typed errors.

Lower layers never raise the public exceptions directly. They call
:func:`report`, which hands the abort to the process-global error callback.
Until :func:`init_once` has run that callback treats every abort as fatal
(:class:`ConsistencyFault`); afterwards it raises the matching class from
:mod:`arena_yaml.shared.errors`. The callback is process state, so the
translator is installed exactly once, under a lock, and later calls are no-ops.

Example:
    >>> init_once()
    >>> report(ErrorKind.CYCLIC_MOVE, "node 3 is an ancestor of 7")
    Traceback (most recent call last):
    ...
    arena_yaml.shared.errors.CyclicMove: node 3 is an ancestor of 7
"""

import threading
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, Callable, Dict, Iterator, NoReturn, Optional, Type

import yaml

from arena_yaml.shared.errors import (
    ArenaYamlError,
    BufferExhausted,
    ConsistencyFault,
    CyclicMove,
    EmitError,
    IndexOutOfBounds,
    InvalidIndex,
    InvalidNodeKind,
    Location,
    MalformedInput,
)
from arena_yaml.shared.logging import get_logger

logger = get_logger(__name__, component="bridge")


class ErrorKind(Enum):
    """Abort conditions the engine can signal."""

    MALFORMED_INPUT = auto()
    INVALID_INDEX = auto()
    INDEX_OUT_OF_BOUNDS = auto()
    CYCLIC_MOVE = auto()
    INVALID_NODE_KIND = auto()
    BUFFER_EXHAUSTED = auto()
    EMIT = auto()
    INTERNAL = auto()


ErrorHandler = Callable[[ErrorKind, str, Optional[Location], Dict[str, Any]], None]

_ERROR_CLASSES: Dict[ErrorKind, Type[ArenaYamlError]] = {
    ErrorKind.MALFORMED_INPUT: MalformedInput,
    ErrorKind.INVALID_INDEX: InvalidIndex,
    ErrorKind.INDEX_OUT_OF_BOUNDS: IndexOutOfBounds,
    ErrorKind.CYCLIC_MOVE: CyclicMove,
    ErrorKind.INVALID_NODE_KIND: InvalidNodeKind,
    ErrorKind.BUFFER_EXHAUSTED: BufferExhausted,
    ErrorKind.EMIT: EmitError,
}


@dataclass(frozen=True)
class ErrorCallbacks:
    """Holder for the process-global abort handler.

    The handler must not return: it is expected to raise.
    """

    error: ErrorHandler


def _abort(
    kind: ErrorKind,
    message: str,
    location: Optional[Location],
    details: Dict[str, Any],
) -> NoReturn:
    logger.critical(
        "Unhandled engine abort",
        extra={"kind": kind.name, "abort_message": message, "location": str(location)},
    )
    raise ConsistencyFault(f"{kind.name}: {message}")


def _raise_typed(
    kind: ErrorKind,
    message: str,
    location: Optional[Location],
    details: Dict[str, Any],
) -> NoReturn:
    error_class = _ERROR_CLASSES.get(kind)
    if error_class is None:
        logger.critical(
            "Internal consistency fault",
            extra={"abort_message": message, "details": details},
        )
        raise ConsistencyFault(message)
    raise error_class(message, location, details)


_lock = threading.Lock()
_initialized = False
_callbacks = ErrorCallbacks(error=_abort)


def init_once() -> None:
    """Install the abort-to-error translator; repeated calls do nothing."""
    global _initialized, _callbacks
    if _initialized:
        return
    with _lock:
        if _initialized:
            return
        _callbacks = ErrorCallbacks(error=_raise_typed)
        _initialized = True
    logger.debug("Installed error translator")


def is_initialized() -> bool:
    """Check whether :func:`init_once` has run in this process."""
    return _initialized


def get_callbacks() -> ErrorCallbacks:
    """Return the currently installed callbacks."""
    return _callbacks


def set_callbacks(callbacks: ErrorCallbacks) -> ErrorCallbacks:
    """Replace the installed callbacks and return the previous ones.

    Intended for embedding applications that route aborts into their own
    error types. The replacement must raise; see :func:`report`.
    """
    global _callbacks
    with _lock:
        previous = _callbacks
        _callbacks = callbacks
    return previous


def report(
    kind: ErrorKind,
    message: str,
    location: Optional[Location] = None,
    **details: Any,
) -> NoReturn:
    """Signal an abort through the installed callback.

    Never returns. A callback that returns normally is itself an engine
    fault, since the caller cannot continue past an abort.
    """
    _callbacks.error(kind, message, location, details)
    raise ConsistencyFault(f"error callback returned after {kind.name}: {message}")


@contextmanager
def translate_parser_errors(source_name: str) -> Iterator[None]:
    """Convert PyYAML failures raised inside the block into ``MalformedInput``."""
    try:
        yield
    except yaml.MarkedYAMLError as exc:
        mark = exc.problem_mark or exc.context_mark
        if mark is not None:
            location = Location(source_name, mark.line + 1, mark.column + 1, mark.index)
        else:
            location = Location(source_name)
        message = exc.problem or exc.context or "malformed input"
        logger.warning(
            "Parser rejected input",
            extra={"location": str(location), "problem": message},
        )
        report(ErrorKind.MALFORMED_INPUT, message, location, context=exc.context)
    except yaml.YAMLError as exc:
        position = getattr(exc, "position", 0)
        location = Location(source_name, offset=position)
        logger.warning(
            "Reader rejected input",
            extra={"location": str(location), "problem": str(exc)},
        )
        report(ErrorKind.MALFORMED_INPUT, str(exc), location)
