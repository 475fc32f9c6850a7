"""Adapter for callers that expect ``callback(error, result)`` notifications."""

import functools
import inspect
from typing import Any, Awaitable, Callable, Optional, TypeVar

T = TypeVar("T")

SessionCallback = Callable[[Optional[BaseException], Any], Any]


async def _notify(callback: SessionCallback, error: Optional[BaseException], result: Any) -> None:
    outcome = callback(error, result)
    if inspect.isawaitable(outcome):
        await outcome


def callback_compatible(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
    """
    Let an async store method also report through an optional ``callback``.

    The wrapped coroutine still returns its result or raises; the callback is
    told about the same outcome first. Callbacks may be plain functions or
    coroutine functions.
    """

    @functools.wraps(func)
    async def wrapper(*args: Any, callback: Optional[SessionCallback] = None, **kwargs: Any) -> T:
        try:
            result = await func(*args, **kwargs)
        except Exception as e:
            if callback is not None:
                await _notify(callback, e, None)
            raise
        if callback is not None:
            await _notify(callback, None, result)
        return result

    return wrapper
