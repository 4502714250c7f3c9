"""Cancellation token and the interrupt handler that trips it."""

import logging
import signal
import threading
from contextlib import contextmanager
from typing import Iterator

logger = logging.getLogger(__name__)


class CancellationToken:
    """Flag checked by polling loops at the top of every iteration."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        """Request cancellation. Safe to call any number of times."""
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


@contextmanager
def interrupt_handler(token: CancellationToken) -> Iterator[CancellationToken]:
    """Route SIGINT to token.cancel() for the duration of the block.

    The previous handler is restored on exit, so repeated invocations inside one
    host process do not stack handlers. Outside the main thread signals cannot be
    handled and the token is only cancellable by the caller.
    """
    if threading.current_thread() is not threading.main_thread():
        logger.debug("Not in main thread, SIGINT handler not installed")
        yield token
        return

    def _on_sigint(signum: int, _frame: object) -> None:
        logger.info(f"Caught {signal.Signals(signum).name}, cancelling")
        token.cancel()

    previous = signal.signal(signal.SIGINT, _on_sigint)
    try:
        yield token
    finally:
        signal.signal(signal.SIGINT, previous)
