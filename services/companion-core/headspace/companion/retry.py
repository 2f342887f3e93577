import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from ..errors import ExternalApiFailure, MalformedResponse

logger = logging.getLogger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]


class RetryAbandoned(Exception):
    """The caller stopped wanting the result between attempts."""


def backoff_delay(attempt: int, base_delay: float) -> float:
    return base_delay * (2 ** (attempt - 1))


async def call_with_retry(
    call_fn: Callable[[int], Awaitable[T]],
    attempts: int = 3,
    base_delay: float = 1.0,
    sleep: Sleep = asyncio.sleep,
    still_wanted: Optional[Callable[[], bool]] = None,
) -> T:
    """Run ``call_fn`` up to ``attempts`` times with exponential backoff.

    Only ExternalApiFailure is retried. A MalformedResponse is returned to the
    caller straight away since asking again rarely fixes the shape.
    """
    attempts = max(attempts, 1)
    last_error: Optional[ExternalApiFailure] = None
    for attempt in range(1, attempts + 1):
        try:
            return await call_fn(attempt)
        except MalformedResponse:
            raise
        except ExternalApiFailure as error:
            last_error = error
            if attempt >= attempts:
                break
            delay = backoff_delay(attempt, base_delay)
            logger.warning("API call failed (%s). Retrying in %ss...", error, delay)
            await sleep(delay)
            if still_wanted is not None and not still_wanted():
                raise RetryAbandoned()
    logger.error("An error occurred after %s attempts: %s", attempts, last_error)
    raise ExternalApiFailure(f"Failed after {attempts} attempts. Last error: {last_error}") from last_error
