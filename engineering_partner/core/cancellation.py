"""Cooperative cancellation for long-running workflow runs."""

import asyncio

from engineering_partner.core.errors import WorkflowCancelledError


class CancellationToken:
    """
    Cancellation signal checked between units of work.

    Example:
        >>> token = CancellationToken()
        >>> token.cancel()
        >>> token.raise_if_cancelled()
        Traceback (most recent call last):
        ...
        WorkflowCancelledError: Automation was cancelled by the user.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        """Request cancellation."""
        self._event.set()

    @property
    def cancelled(self) -> bool:
        """Whether cancellation has been requested."""
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        """Raise WorkflowCancelledError if cancellation has been requested."""
        if self._event.is_set():
            raise WorkflowCancelledError()

    async def wait(self) -> None:
        """Block until cancellation is requested."""
        await self._event.wait()
