# © 2026 Pallab Basu Roy. All rights reserved.
# This source code is proprietary and confidential.
# Unauthorized copying, modification, or commercial use is strictly prohibited.

"""Caller-side retry policy for index writes, using tenacity.

The write layer never retries on its own. Callers that want retries wrap
their writes here:

- TransientStoreError (timeout, unavailable) is retried with capped
  exponential backoff, plus up to one second of jitter when enabled.
- Every other failure is raised on the attempt it happened.
- issue_with_retry() re-issues a clone of the failed task. Clones are
  always permitted, so the dedup cache cannot swallow the retry of a write
  it already allowed once.
"""

import functools
import random
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from tenacity import RetryCallState, retry, retry_if_exception_type, stop_after_attempt

from trace_index.dedup.deduplicating_write import DeduplicatingWrite
from trace_index.sinks.base_store import TransientStoreError, WriteTimeoutError
from trace_index.utils.logger import get_logger

logger = get_logger()


@dataclass(frozen=True)
class RetryPolicy:
    """One retry profile from ``config["retry"]``. Defaults mirror retry_policy.yaml."""
    max_attempts: int = 3
    initial_wait_seconds: float = 0.1
    max_wait_seconds: float = 5.0
    exponential_base: float = 2
    jitter: bool = True
    write_timeout_seconds: float = 10.0

    @classmethod
    def from_config(cls, source: str, config: Optional[Dict[str, Any]]) -> "RetryPolicy":
        """
        Profile ``source``, else the ``default`` profile, else built-in values.

        Keys missing from the chosen profile keep their built-in values;
        unknown keys are ignored.
        """
        profiles = (config or {}).get("retry", {})
        profile = profiles.get(source) or profiles.get("default") or {}
        known = {k: v for k, v in profile.items() if k in cls.__dataclass_fields__}
        return cls(**known)

    def backoff(self, attempt: int) -> float:
        """Seconds to sleep after failed attempt number ``attempt`` (1-based)."""
        delay = min(
            self.initial_wait_seconds * self.exponential_base ** (attempt - 1),
            self.max_wait_seconds,
        )
        if self.jitter:
            delay += random.uniform(0, 1)
        return delay


def _wait(policy: RetryPolicy):
    return lambda state: policy.backoff(state.attempt_number)


def _log_retry(state: RetryCallState) -> None:
    sleep = state.next_action.sleep if state.next_action else 0
    error = state.outcome.exception() if state.outcome else None
    logger.warning(
        f"Index write attempt {state.attempt_number} failed, retrying in {sleep:.1f}s: {error}"
    )


def with_retry(source: str = "default", config: Optional[Dict[str, Any]] = None):
    """
    Decorator factory retrying the wrapped call on TransientStoreError.

    The last failure is re-raised once the profile's max_attempts is spent.

    Args:
        source: Retry profile name, e.g. "index_writes".
        config: Merged config holding a "retry" section.

    Example:
        @with_retry(source="index_writes", config=app_config)
        def write():
            ...
    """
    policy = RetryPolicy.from_config(source, config)
    retrying = retry(
        stop=stop_after_attempt(policy.max_attempts),
        wait=_wait(policy),
        retry=retry_if_exception_type(TransientStoreError),
        before_sleep=_log_retry,
        reraise=True,
    )

    def decorator(fn):
        return functools.wraps(fn)(retrying(fn))

    return decorator


def issue_with_retry(
    task: DeduplicatingWrite,
    config: Optional[Dict[str, Any]] = None,
    source: str = "index_writes",
) -> None:
    """
    Issue a write and block until it lands or the retries run out.

    Each attempt waits write_timeout_seconds for the store; no answer in
    that time counts as a WriteTimeoutError.

    Args:
        task: Task from a factory's new_write_task().
        config: Merged config holding a "retry" section.
        source: Retry profile name.

    Raises:
        TransientStoreError: If every attempt failed transiently.
        StoreError: Any non-transient failure, on the attempt it happened.
    """
    timeout = RetryPolicy.from_config(source, config).write_timeout_seconds
    attempts: List[DeduplicatingWrite] = []

    @with_retry(source=source, config=config)
    def _attempt() -> None:
        if attempts:
            current = attempts[-1].clone()
            task.factory.stats.record_retried()
        else:
            current = task
        attempts.append(current)
        future: Future = current.issue()
        try:
            future.result(timeout=timeout)
        except FutureTimeoutError as e:
            raise WriteTimeoutError(f"No acknowledgement for {current} within {timeout}s") from e

    _attempt()
