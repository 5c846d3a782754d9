from typing import Any, Awaitable, Callable, Protocol


class RetryPort(Protocol):
    """Retry wrapper for one-off remote reads such as the model catalog.

    Poll ticks never go through this port; a failed tick simply waits for the
    next one.
    """

    async def execute(self, func: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:  # pragma: no cover - protocol
        """Run `func(*args, **kwargs)`, retrying on the configured exception types.

        Optional keyword overrides: attempts, wait_initial, wait_max, exception_types.
        The last exception is re-raised once attempts are exhausted.
        """
        ...
