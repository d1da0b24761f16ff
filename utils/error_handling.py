"""Error taxonomy and error-handling decorator for the optimization engine."""
import inspect
from typing import Callable, TypeVar, Optional
from functools import wraps
from enum import Enum

T = TypeVar('T')


class ErrorSeverity(Enum):
    """Error severity levels."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class OptimizationError(Exception):
    """Base class for engine errors."""
    severity: ErrorSeverity = ErrorSeverity.MEDIUM


class NotFoundError(OptimizationError):
    """An agent or prompt version does not exist in the repository."""
    severity = ErrorSeverity.HIGH

    def __init__(self, kind: str, identifier: str):
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind} '{identifier}' not found")


class NoTestDataError(OptimizationError):
    """The labeled evaluation sample is empty."""
    severity = ErrorSeverity.HIGH

    def __init__(self, message: str = "No test data available for evaluation"):
        super().__init__(message)


class LengthMismatchError(OptimizationError, ValueError):
    """Predictions and ground truth differ in length.

    This is a caller contract violation and is never recovered by the loop.
    """
    severity = ErrorSeverity.CRITICAL

    def __init__(self, predictions_length: int, ground_truth_length: int, what: str = "Predictions and ground truth"):
        self.predictions_length = predictions_length
        self.ground_truth_length = ground_truth_length
        super().__init__(
            f"{what} must have the same length "
            f"(got {predictions_length} and {ground_truth_length})"
        )


class CollaboratorFailure(OptimizationError):
    """A research, engineer, executor or repository call raised.

    The original exception is chained as ``__cause__``.
    """
    severity = ErrorSeverity.HIGH

    def __init__(self, role: str, cause: BaseException):
        self.role = role
        self.cause = cause
        super().__init__(f"{role} call failed: {type(cause).__name__}: {cause}")


class StrategySelectionError(OptimizationError):
    """No registered evaluation strategy fits the evaluation context."""


def handle_errors(
    severity: ErrorSeverity = ErrorSeverity.MEDIUM,
    log_error: bool = True,
    reraise: bool = True
):
    """
    Decorator for error handling with logging.

    Works for plain functions and coroutine functions. Engine errors log with
    their own severity; anything else logs with ``severity``.

    Args:
        severity: Severity recorded for non-engine exceptions
        log_error: Whether to log the error
        reraise: Whether to re-raise the exception
    """
    def _log(func: Callable, e: Exception):
        from utils.logging_utils import get_logger
        logger = get_logger("errors")
        level = e.severity if isinstance(e, OptimizationError) else severity
        logger.error(
            f"Error in {func.__name__}: {str(e)}",
            severity=level.value,
            function=func.__name__,
            exception_type=type(e).__name__
        )

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        if inspect.iscoroutinefunction(func):
            @wraps(func)
            async def async_wrapper(*args, **kwargs):
                try:
                    return await func(*args, **kwargs)
                except Exception as e:
                    if log_error:
                        _log(func, e)
                    if reraise:
                        raise
                    return None
            return async_wrapper

        @wraps(func)
        def wrapper(*args, **kwargs) -> Optional[T]:
            try:
                return func(*args, **kwargs)
            except Exception as e:
                if log_error:
                    _log(func, e)
                if reraise:
                    raise
                return None

        return wrapper
    return decorator
