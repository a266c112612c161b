"""Boundary handling shared by all public MFA operations.

Nothing raised by a collaborator crosses an operation boundary:
``ProviderError`` and timeouts become a retryable ``provider_error`` result,
``UserInputError`` becomes ``invalid_input``. ``ConfigurationError`` is
fatal and propagates.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any, Protocol, TypeVar

from .domain import AccountSession
from .exceptions import ProviderError, UserInputError
from .observability import MfaMetrics
from .results import Failed, MfaErrorCode, provider_failure

logger = logging.getLogger(__name__)

R = TypeVar("R")


class _HasTimeout(Protocol):
    operation_timeout: float


def _account_ref(args: tuple[Any, ...]) -> str:
    for arg in args:
        if isinstance(arg, AccountSession):
            return arg.account_id
    return "-"


def _outcome(result: Any) -> str:
    if isinstance(result, Failed):
        return result.error.value
    return str(getattr(result, "kind", "ok"))


def provider_boundary(
    operation: str,
) -> Callable[[Callable[..., Awaitable[R]]], Callable[..., Awaitable[R | Failed]]]:
    """Decorate an async operation so it always returns a result object.

    The decorated method's instance must expose ``operation_timeout``
    (seconds). The whole operation is bounded by it.
    """

    def decorator(
        func: Callable[..., Awaitable[R]],
    ) -> Callable[..., Awaitable[R | Failed]]:
        @functools.wraps(func)
        async def wrapper(self: _HasTimeout, *args: Any, **kwargs: Any) -> R | Failed:
            start = time.monotonic()
            account = _account_ref(args)
            try:
                result: R | Failed = await asyncio.wait_for(
                    func(self, *args, **kwargs), timeout=self.operation_timeout
                )
            except asyncio.TimeoutError:
                logger.error(
                    "MFA %s timed out after %ss (account=%s)",
                    operation,
                    self.operation_timeout,
                    account,
                )
                result = provider_failure()
            except UserInputError as exc:
                result = Failed(MfaErrorCode.INVALID_INPUT, exc.first_message)
            except ProviderError as exc:
                logger.error(
                    "MFA %s failed in %s (account=%s, retryable=%s): %s",
                    operation,
                    exc.operation or "provider",
                    account,
                    exc.retryable,
                    exc,
                )
                result = provider_failure()
            MfaMetrics.record(operation, _outcome(result), time.monotonic() - start)
            return result

        return wrapper

    return decorator


__all__: list[str] = ["provider_boundary"]
