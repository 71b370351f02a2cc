"""Bounded, cancellable execution of one task per cluster member."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Sequence
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait

from pg_index_health.exceptions import BatchCancelled, HostTimeout, HostUnreachable
from pg_index_health.models import HostFailure

logger = logging.getLogger(__name__)

POLL_INTERVAL = 0.05


def run_on_members(
    members: Sequence,
    task: Callable,
    label: str,
    timeout: float | None = None,
    cancel_event: threading.Event | None = None,
):
    """Run `task(member)` on every member concurrently.

    Members are anything with `identity` and `connection` attributes. A
    member that raises, or does not answer within `timeout` seconds, becomes
    a HostFailure; its running query is cancelled through the connection.

    Args:
        members: Members to run on, in the order results are reported.
        task: Called once per member in a worker thread.
        label: Name used in log records and thread names.
        timeout: Seconds each member may take; None means no limit.
        cancel_event: When set, running queries are cancelled and
            BatchCancelled is raised.

    Returns:
        (answers, failures): `(member, value)` pairs and HostFailure entries,
        both in member order.
    """
    positions = {m.identity: i for i, m in enumerate(members)}
    answers: list[tuple] = []
    failures: list[HostFailure] = []
    if not members:
        return answers, failures

    executor = ThreadPoolExecutor(max_workers=len(members), thread_name_prefix=f"pg-index-health-{label}")
    futures = {executor.submit(task, member): member for member in members}
    deadline = None if timeout is None else time.monotonic() + timeout
    pending = set(futures)
    try:
        while pending:
            if cancel_event is not None and cancel_event.is_set():
                for future in pending:
                    futures[future].connection.cancel()
                raise BatchCancelled(f"{label} was cancelled")

            done, pending = wait(
                pending,
                timeout=_wait_interval(deadline, cancel_event),
                return_when=FIRST_COMPLETED,
            )
            for future in done:
                member = futures[future]
                try:
                    answers.append((member, future.result()))
                except HostUnreachable as e:
                    logger.warning("%s failed on %s: %s", label, member.identity, e.reason)
                    failures.append(HostFailure(member.identity, e.reason, isinstance(e, HostTimeout)))
                except BatchCancelled:
                    raise
                except Exception as e:
                    logger.exception("%s raised unexpectedly on %s", label, member.identity)
                    failures.append(HostFailure(member.identity, f"{type(e).__name__}: {e}"))

            if pending and deadline is not None and time.monotonic() >= deadline:
                for future in pending:
                    member = futures[future]
                    member.connection.cancel()
                    logger.warning("%s timed out on %s after %ss", label, member.identity, timeout)
                    failures.append(HostFailure(member.identity, f"no answer within {timeout}s", True))
                pending = set()
    finally:
        executor.shutdown(wait=False, cancel_futures=True)

    answers.sort(key=lambda pair: positions[pair[0].identity])
    failures.sort(key=lambda f: positions[f.host])
    return answers, failures


def _wait_interval(deadline: float | None, cancel_event: threading.Event | None) -> float | None:
    if deadline is None:
        return POLL_INTERVAL if cancel_event is not None else None
    remaining = max(deadline - time.monotonic(), 0.0)
    if cancel_event is not None:
        return min(remaining, POLL_INTERVAL)
    return remaining
