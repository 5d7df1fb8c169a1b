import asyncio
import logging
from typing import Awaitable, Tuple, Type, TypeVar

from .errors import AuthError

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def bounded(
    awaitable: Awaitable[T],
    timeout: float,
    failure: Type[AuthError],
    what: str,
    passthrough: Tuple[Type[BaseException], ...] = (),
) -> T:
    """Await an external call under ``timeout``; timeouts and errors become ``failure``.

    Typed auth errors and any ``passthrough`` exception types propagate untouched.
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except (AuthError,) + passthrough:
        raise
    except asyncio.TimeoutError as e:
        logger.error(f"{what} timed out after {timeout}s")
        raise failure(f"{what} timed out") from e
    except Exception as e:
        logger.error(f"{what} failed: {e}")
        raise failure() from e
