"""Inactivity sweep: evict participants whose last ping is too old.

One call to :meth:`InactivitySweeper.sweep` is one scan-evict-notify cycle.
It never raises; failures come back inside the :class:`SweepResult` so the
owning scheduler decides how to log them and simply tries again next period.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional, Tuple

from chatroom.core.config import EVERYONE, LEFT_TEXT, SweeperConfig
from chatroom.core.errors import ChatRoomError, PartialSweepFailure, StoreUnavailable
from chatroom.core.stores import MessageLog, PresenceStore
from chatroom.core.time_utils import format_clock, now_ms
from chatroom.models import status_message


@dataclass(frozen=True)
class SweepResult:
    """Outcome of one sweep.

    Attributes:
        now_ms: Wall-clock snapshot the sweep ran against.
        cutoff_ms: Participants with ``last_status`` below this were stale.
        removed: Names evicted from the presence store.
        notified: Departure messages appended to the log.
        error: Recoverable failure, if any; presence state is never left corrupt.
    """
    now_ms: int
    cutoff_ms: int
    removed: Tuple[str, ...] = ()
    notified: int = 0
    error: Optional[ChatRoomError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def evicted(self) -> int:
        return len(self.removed)


class InactivitySweeper:
    """Scan the presence store for stale entries, remove them and announce departures."""

    def __init__(
        self,
        config: SweeperConfig,
        participants: PresenceStore,
        messages: MessageLog,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.config = config
        self.participants = participants
        self.messages = messages
        self._clock = clock

    def cutoff_for(self, now: int) -> int:
        return now - self.config.staleness_threshold_ms

    async def sweep(self, now: Optional[int] = None) -> SweepResult:
        now = self._clock() if now is None else int(now)
        cutoff = self.cutoff_for(now)

        try:
            stale = await self.participants.find_stale(cutoff)
        except Exception as exc:
            return SweepResult(now, cutoff, error=_as_store_error(exc, "find_stale"))
        if not stale:
            return SweepResult(now, cutoff)

        # Delete only the snapshotted names, re-checked against the cutoff, so a
        # ping that lands between the read and the delete keeps its participant.
        try:
            removed = tuple(await self.participants.delete_stale(cutoff, names=[p.name for p in stale]))
        except Exception as exc:
            return SweepResult(now, cutoff, error=_as_store_error(exc, "delete_stale"))
        if not removed:
            return SweepResult(now, cutoff)

        sent_at = format_clock(now)
        departures = [status_message(name, LEFT_TEXT, EVERYONE, sent_at) for name in removed]
        try:
            await self.messages.append_many(departures)
        except Exception as exc:
            failure = PartialSweepFailure(f"evicted {len(removed)} participant(s) but departure append failed: {exc}", removed)
            failure.__cause__ = exc
            return SweepResult(now, cutoff, removed=removed, error=failure)

        return SweepResult(now, cutoff, removed=removed, notified=len(departures))


def _as_store_error(exc: Exception, op: str) -> StoreUnavailable:
    if isinstance(exc, StoreUnavailable):
        return exc
    err = StoreUnavailable(f"{op} failed: {exc}")
    err.__cause__ = exc
    return err


__all__ = ["InactivitySweeper", "SweepResult"]
