"""Exit codes and user-facing messages for failed CLI commands"""

import logging
import sys
from functools import wraps
from typing import Any, Callable, Optional, Tuple, Type, TypeVar

import httpx

from .errors import PipelineStepError, StorageUnavailableError

logger = logging.getLogger(__name__)

Command = TypeVar("Command", bound=Callable[..., Any])

EXIT_INTERRUPTED = 130


class CLIError(Exception):
    """A command failed in a way the user should be told about."""

    exit_code = 1

    def __init__(self, message: str, context: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.context = context


class StorageError(CLIError):
    """Snapshot store is missing or unreadable."""

    exit_code = 2


class ConfigError(CLIError):
    """Settings or options rejected."""

    exit_code = 3


class UpdateError(CLIError):
    """A pipeline run reported failure."""

    exit_code = 4


class NetworkError(CLIError):
    """Upstream could not be reached."""

    exit_code = 5


# (exception types, label, exit code), first match wins
ERROR_TABLE: Tuple[Tuple[Tuple[Type[BaseException], ...], str, int], ...] = (
    ((StorageUnavailableError,), "Storage unavailable", StorageError.exit_code),
    ((PipelineStepError,), "Update failed", UpdateError.exit_code),
    ((ValueError,), "Invalid value", ConfigError.exit_code),
    ((httpx.TransportError, TimeoutError, ConnectionError), "Network failure", NetworkError.exit_code),
)


def _classify(error: BaseException) -> Optional[Tuple[str, int]]:
    if isinstance(error, CLIError):
        return "Error", error.exit_code
    for types, label, code in ERROR_TABLE:
        if isinstance(error, types):
            return label, code
    return None


def format_error_message(error: Exception, context: Optional[str] = None) -> str:
    """Render ``❌ <context>: <label> - <detail>`` for stderr."""
    classified = _classify(error)
    label = classified[0] if classified else type(error).__name__
    prefix = f"❌ {context}: {label}" if context else f"❌ {label}"
    detail = str(error)
    return f"{prefix} - {detail}" if detail else prefix


def handle_cli_errors(context: str = "") -> Callable[[Command], Command]:
    """
    Turn known failures of a click command into a message and an exit code.

    Exceptions not listed in ``ERROR_TABLE`` propagate unchanged.

    Args:
        context: Operation name shown before the error label
    """

    def decorator(func: Command) -> Command:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            try:
                return func(*args, **kwargs)
            except KeyboardInterrupt:
                print("\n⚠️  Interrupted", file=sys.stderr)
                sys.exit(EXIT_INTERRUPTED)
            except Exception as e:
                classified = _classify(e)
                if classified is None:
                    raise
                label_context = e.context if isinstance(e, CLIError) and not context else context
                logger.debug("Command %s failed", func.__name__, exc_info=True)
                print(format_error_message(e, label_context or None), file=sys.stderr)
                sys.exit(classified[1])

        return wrapper  # type: ignore[return-value]

    return decorator
