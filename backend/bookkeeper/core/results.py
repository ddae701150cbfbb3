"""Tagged operation results.

Every public operation of the period lifecycle engine returns an
:class:`ActionResult` instead of raising: ``success=True`` with ``data``, or
``success=False`` with an :class:`ActionError` the caller can branch on by
``code``.
"""

from __future__ import annotations

import functools
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, ParamSpec, TypeVar

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from bookkeeper.core.exceptions import AppError, ErrorCode, InternalError, ValidationError

logger = logging.getLogger(__name__)

T = TypeVar("T")
P = ParamSpec("P")


@dataclass(frozen=True)
class ActionError:
    code: ErrorCode
    message: str
    details: dict[str, Any] | None = None

    @classmethod
    def from_exception(cls, exc: AppError) -> ActionError:
        return cls(code=exc.code, message=exc.message, details=exc.details)


@dataclass(frozen=True)
class ActionResult(Generic[T]):
    success: bool
    data: T | None = None
    error: ActionError | None = None

    @classmethod
    def ok(cls, data: T) -> ActionResult[T]:
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: ActionError) -> ActionResult[T]:
        return cls(success=False, error=error)


def validation_error_from_pydantic(exc: PydanticValidationError) -> ValidationError:
    """Flatten pydantic errors into ``{field, message, type}`` entries."""
    errors = [
        {
            "field": ".".join(str(loc) for loc in err.get("loc", ())),
            "message": err.get("msg", "Invalid value"),
            "type": err.get("type", "value_error"),
        }
        for err in exc.errors()
    ]
    message = errors[0]["message"] if errors else "Invalid input."
    if message.startswith("Value error, "):
        message = message[len("Value error, "):]
    return ValidationError(message, {"errors": errors})


def to_app_error(exc: Exception) -> AppError:
    """Map any exception onto the closest taxonomy kind."""
    if isinstance(exc, AppError):
        return exc
    if isinstance(exc, PydanticValidationError):
        return validation_error_from_pydantic(exc)
    if isinstance(exc, IntegrityError):
        return InternalError(
            "The change conflicts with existing data. Please reload and try again.",
            {"reason": "constraint_violation"},
        )
    if isinstance(exc, SQLAlchemyError):
        return InternalError(details={"reason": "database_error"})
    return InternalError()


def action(
    func: Callable[P, Awaitable[T]],
) -> Callable[P, Awaitable[ActionResult[T]]]:
    """Run an engine operation and normalize its outcome into an ActionResult.

    The decorated coroutine must be a method of an object exposing an async
    ``rollback()``; it is called before any persistence failure is reported.
    """

    @functools.wraps(func)
    async def wrapper(*args: P.args, **kwargs: P.kwargs) -> ActionResult[T]:
        try:
            return ActionResult.ok(await func(*args, **kwargs))
        except AppError as exc:
            logger.warning("%s failed: %s", func.__name__, exc.code)
            return ActionResult.fail(ActionError.from_exception(exc))
        except PydanticValidationError as exc:
            logger.warning("%s failed: %s", func.__name__, ErrorCode.VALIDATION_ERROR)
            return ActionResult.fail(ActionError.from_exception(to_app_error(exc)))
        except Exception as exc:
            logger.exception("%s failed unexpectedly", func.__name__)
            try:
                await args[0].rollback()
            except Exception:
                logger.exception("Rollback after %s failed", func.__name__)
            return ActionResult.fail(ActionError.from_exception(to_app_error(exc)))

    return wrapper
