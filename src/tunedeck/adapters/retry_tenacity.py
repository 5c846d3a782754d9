from typing import Any, Awaitable, Callable, Sequence, Type

from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential

from tunedeck.core.exceptions import TransportError


def _is_transient(exc: BaseException) -> bool:
    # Fatal transport errors (auth, not found) are never retried
    return not (isinstance(exc, TransportError) and exc.fatal)


class TenacityRetryAdapter:
    """Tenacity-based retry adapter implementing RetryPort.

    Exponential backoff over async callables. Only exceptions of
    `exception_types` are retried, and a TransportError flagged fatal is
    raised at once. Call-time kwargs can override the defaults
    (attempts, wait_initial, wait_max, exception_types).
    """

    def __init__(
        self,
        attempts: int = 3,
        wait_initial: float = 0.2,
        wait_max: float = 2.0,
        exception_types: Sequence[Type[Exception]] = (TransportError,),
    ) -> None:
        self.attempts = attempts
        self.wait_initial = wait_initial
        self.wait_max = wait_max
        self.exception_types = tuple(exception_types)

    async def execute(self, func: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        attempts = kwargs.pop("attempts", self.attempts)
        wait_initial = kwargs.pop("wait_initial", self.wait_initial)
        wait_max = kwargs.pop("wait_max", self.wait_max)
        exception_types = tuple(kwargs.pop("exception_types", self.exception_types))

        retrying = AsyncRetrying(
            stop=stop_after_attempt(attempts),
            wait=wait_exponential(multiplier=wait_initial, max=wait_max),
            retry=retry_if_exception(
                lambda exc: isinstance(exc, exception_types) and _is_transient(exc)
            ),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                return await func(*args, **kwargs)
