"""
All-or-nothing execution of ledger entry points.

Each public call snapshots every participant it may touch (its own records,
the token ledger, the event log) and restores all of them if any step raises.
Participants without snapshot support are left as they are, so ledgers still
validate before they mutate.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Any, Iterator

from tokensale.exceptions import get_error_context
from tokensale.interfaces import Snapshotable

logger = logging.getLogger(__name__)

_registry_lock = threading.Lock()


def ledger_lock(token: Any) -> threading.RLock:
    """
    Lock shared by every ledger that moves balances of `token`.

    A rollback restores the whole token and event log snapshot, so ledgers
    sharing a token must never run calls concurrently.
    """
    lock = getattr(token, "ledger_lock", None)
    if lock is None:
        with _registry_lock:
            lock = getattr(token, "ledger_lock", None)
            if lock is None:
                lock = threading.RLock()
                token.ledger_lock = lock
    return lock


@contextmanager
def atomic(operation: str, *participants: Any) -> Iterator[None]:
    """
    Run a block so that either all of its mutations commit or none do.

    Args:
        operation: Name used when logging an aborted call
        participants: Objects implementing snapshot()/restore(); others ignored
    """
    snapshots = [
        (participant, participant.snapshot())
        for participant in participants
        if isinstance(participant, Snapshotable)
    ]
    try:
        yield
    except Exception as exc:
        for participant, state in reversed(snapshots):
            participant.restore(state)
        logger.warning(
            "Call aborted: %s",
            operation,
            extra={"event": "atomic.rollback", "operation": operation, **get_error_context(exc)},
        )
        raise
