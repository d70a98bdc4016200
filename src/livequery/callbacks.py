"""Invocation of user callbacks that may be sync or async."""

import inspect
from collections.abc import Callable
from typing import Any


async def invoke(callback: Callable[..., Any] | None, *args: Any) -> None:
    """Call a callback, awaiting its result if it returned an awaitable."""
    if callback is None:
        return
    result = callback(*args)
    if inspect.isawaitable(result):
        await result
