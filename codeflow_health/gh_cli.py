"""Thin wrapper around the gh CLI for codeflow queries.

Every call goes through run_gh(), which never raises for per-call failures:
a non-zero exit, a timeout, a process that cannot start, or empty output
all come back as None, and the JSON helpers add decode errors and wrong
top-level types to that list.
Callers only ever have to check for None.
"""

from __future__ import annotations

import json
import logging
import shutil
import subprocess
import sys
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, TypeVar

logger = logging.getLogger("codeflow_health.gh_cli")

DEFAULT_TIMEOUT = 30

T = TypeVar("T")


def gh_available() -> bool:
    """True if the gh executable is on PATH. Checked once before any query."""
    return shutil.which("gh") is not None


def run_gh(args: list[str], timeout: int = DEFAULT_TIMEOUT) -> Optional[str]:
    """Run a gh CLI command and return stdout, or None on failure."""
    try:
        result = subprocess.run(
            ["gh"] + args,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired:
        logger.debug("gh command timed out after %ss: %s", timeout, " ".join(args))
        return None
    except OSError as e:
        logger.debug("gh command could not start: %s (%s)", " ".join(args), e)
        return None

    if result.returncode != 0:
        stderr = (result.stderr or "")[:500]
        logger.debug("gh command failed: %s\n%s", " ".join(args), stderr)
        return None

    output = (result.stdout or "").strip()
    return output or None


def _gh_json(args: list[str], timeout: int) -> Any:
    output = run_gh(args, timeout)
    if output is None:
        return None
    try:
        return json.loads(output)
    except json.JSONDecodeError as e:
        logger.debug("gh returned malformed JSON for %s: %s", " ".join(args), e)
        return None


def gh_json_list(args: list[str], timeout: int = DEFAULT_TIMEOUT) -> Optional[list]:
    """Run gh and parse stdout as a JSON array. None if it isn't one."""
    data = _gh_json(args, timeout)
    return data if isinstance(data, list) else None


def gh_json_object(args: list[str], timeout: int = DEFAULT_TIMEOUT) -> Optional[dict]:
    """Run gh and parse stdout as a JSON object. None if it isn't one."""
    data = _gh_json(args, timeout)
    return data if isinstance(data, dict) else None


def _non_empty(result: Any) -> bool:
    return bool(result)


@dataclass(frozen=True)
class RetryPolicy:
    """Fixed-count, fixed-delay retry.

    The GitHub search index lags behind merges, so a search that comes back
    empty is repeated a few times before the empty result is accepted.
    ``stop_when`` decides whether a result is good enough to return early.

    Attributes:
        max_attempts: Total number of calls, including the first.
        delay: Seconds to sleep between attempts (never before the first).
        stop_when: Predicate on a result; True ends the loop.
    """

    max_attempts: int = 3
    delay: float = 1.0
    stop_when: Callable[[Any], bool] = field(default=_non_empty)

    def run(
        self,
        fn: Callable[[], T],
        sleep: Optional[Callable[[float], None]] = None,
    ) -> Optional[T]:
        """Call ``fn`` until ``stop_when`` holds or attempts run out.

        ``sleep`` defaults to time.sleep.

        Returns:
            The last result produced, or None if max_attempts < 1.
        """
        if sleep is None:
            sleep = time.sleep
        result: Optional[T] = None
        for attempt in range(self.max_attempts):
            if attempt > 0:
                print(
                    f"  Search returned no results, retrying in {self.delay:g}s "
                    f"(attempt {attempt + 1}/{self.max_attempts})...",
                    file=sys.stderr,
                )
                sleep(self.delay)
            result = fn()
            if self.stop_when(result):
                break
        return result


K = TypeVar("K")


def run_parallel(calls: dict[K, Callable[[], Optional[T]]]) -> dict[K, T]:
    """Run independent gh lookups concurrently and join them all.

    Each key is written by exactly one task, after that task completes.
    Tasks returning None leave their key absent from the result.

    Args:
        calls: Mapping of result key to a zero-argument callable.

    Returns:
        Dict mapping each key to its non-None result.
    """
    if not calls:
        return {}

    results: dict[K, T] = {}
    with ThreadPoolExecutor(max_workers=len(calls)) as executor:
        futures = {executor.submit(fn): key for key, fn in calls.items()}
        for future in as_completed(futures):
            value = future.result()
            if value is not None:
                results[futures[future]] = value
    return results
