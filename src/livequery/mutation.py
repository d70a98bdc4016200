"""Mutation - one write binding.

Runs a caller-supplied write exactly once per mutate() call and tracks its
outcome. Mutations never touch the store; keep queries consistent by
invalidating or setting their keys from the callbacks.

Usage:
    transfer = Mutation(
        post_transfer,
        on_success=lambda data, variables: invalidate_query(store, "wallet"),
    )
    await transfer.mutate({"amt": 10})
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import replace
from typing import Any, Generic, TypeVar

from livequery.callbacks import invoke
from livequery.types import MutationOptions

TData = TypeVar("TData")
TVars = TypeVar("TVars")

logger = logging.getLogger(__name__)


class Mutation(Generic[TData, TVars]):
    """A mutation binding with loading/error/success state."""

    def __init__(
        self,
        fn: Callable[[TVars], Awaitable[TData]],
        options: MutationOptions[TData, TVars] | None = None,
        **overrides: Any,
    ) -> None:
        options = options or MutationOptions()
        if overrides:
            options = replace(options, **overrides)
        self._fn = fn
        self._options = options

        self._data: TData | None = None
        self._has_data = False
        self._error: BaseException | None = None
        self._is_loading = False

    @property
    def data(self) -> TData | None:
        return self._data

    @property
    def error(self) -> BaseException | None:
        return self._error

    @property
    def is_loading(self) -> bool:
        return self._is_loading

    @property
    def is_error(self) -> bool:
        return self._error is not None

    @property
    def is_success(self) -> bool:
        return self._has_data and self._error is None

    async def mutate(self, variables: TVars) -> TData:
        """Run the write once.

        On success, calls on_success then on_settled and returns the
        result. On failure, calls on_error then on_settled and re-raises.
        An exception raised by on_success or on_settled counts as a
        failure of the call: it is stored in error and goes through
        on_error and on_settled like a failed write. Data from a write
        that succeeded is kept. Failures are never retried.
        """
        self._is_loading = True
        self._error = None
        try:
            try:
                result = await self._fn(variables)
                self._data = result
                self._has_data = True
                await invoke(self._options.on_success, result, variables)
                await invoke(self._options.on_settled, result, None, variables)
            except Exception as e:
                self._error = e
                logger.debug("Mutation failed: %r", e)
                await invoke(self._options.on_error, e, variables)
                await invoke(self._options.on_settled, None, e, variables)
                raise
            return result
        finally:
            self._is_loading = False

    def reset(self) -> None:
        """Forget the last outcome. Does not affect is_loading."""
        self._data = None
        self._has_data = False
        self._error = None


__all__ = ["Mutation"]
