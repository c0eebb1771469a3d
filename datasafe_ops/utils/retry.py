import random
import time
from typing import Any, Callable, Tuple, Type

from datasafe_ops.exceptions import OperationalError
from datasafe_ops.monitoring.logger import get_logger

logger = get_logger(__name__)


def call_with_retry(
    func: Callable[..., Any],
    *args,
    max_retries: int = 2,
    base_delay: float = 1.0,
    max_backoff: float = 10.0,
    transient_errors: Tuple[Type[Exception], ...] = (OperationalError,),
    sleep: Callable[[float], None] = time.sleep,
    **kwargs,
) -> Any:
    """
    Call func, retrying on transient errors.

    Implements exponential backoff with jitter. Only exceptions in
    transient_errors are retried; anything else propagates immediately.

    Args:
        max_retries: Maximum number of retry attempts (0 disables retrying)
        base_delay: Initial wait time in seconds
        max_backoff: Maximum wait time in seconds
        transient_errors: Exception types to retry on
        sleep: Wait function (injected in tests)
    """
    retry_count = 0
    backoff = base_delay
    name = getattr(func, "__name__", repr(func))

    while True:
        try:
            return func(*args, **kwargs)
        except transient_errors as e:
            if retry_count >= max_retries:
                if max_retries:
                    logger.warning(
                        f"Max retries ({max_retries}) exhausted for {name}",
                        error=str(e),
                    )
                raise

            logger.warning(
                f"Transient error in {name}, retrying ({retry_count + 1}/{max_retries})",
                error=str(e),
                wait=f"{backoff:.2f}s",
            )
            sleep(backoff)

            # Exponential backoff with jitter
            retry_count += 1
            backoff = min(backoff * 2, max_backoff)
            backoff += random.uniform(0, 0.5)
