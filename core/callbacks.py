"""Helpers for user hooks that may be plain functions or coroutines."""

from __future__ import annotations

import inspect
from typing import Any, Callable


async def resolve(value: Any) -> Any:
    """Await ``value`` when it is awaitable, otherwise return it unchanged."""
    if inspect.isawaitable(value):
        return await value
    return value


async def invoke(callback: Callable[..., Any] | None, *args: Any) -> Any:
    """Call an optional hook and wait for it when it returns an awaitable."""
    if callback is None:
        return None
    return await resolve(callback(*args))
