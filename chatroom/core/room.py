from __future__ import annotations

import logging
import threading
import time
from typing import Callable, List, Optional

from chatroom.core.config import (
    EVERYONE,
    JOINED_TEXT,
    MAX_NAME_LENGTH,
    SweeperConfig,
    get_sweep_timeout_seconds,
    get_sweeper_config,
)
from chatroom.core.errors import InvalidPayload, UnknownParticipant
from chatroom.core.metrics import metrics
from chatroom.core.stores import InMemoryMessageLog, InMemoryPresenceStore, MessageLog, PresenceStore
from chatroom.core.sync import run_and_wait
from chatroom.core.time_utils import format_clock, now_ms
from chatroom.models import POSTABLE_TYPES, Message, Participant, status_message
from chatroom.systems import InactivitySweeper, SweepResult

logger = logging.getLogger(__name__)


class ChatRoom:
    """Process-lifecycle owner of the room state and its inactivity sweep.

    Request handlers call the coroutine methods directly; the sweep runs on its
    own thread started by start_sweeper() and cancelled by stop_sweeper().
    """

    def __init__(
        self,
        config: Optional[SweeperConfig] = None,
        participants: Optional[PresenceStore] = None,
        messages: Optional[MessageLog] = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.config = config or get_sweeper_config()
        self._clock = clock
        self.participants: PresenceStore = participants or InMemoryPresenceStore()
        self.messages: MessageLog = messages or InMemoryMessageLog()
        self.sweeper = InactivitySweeper(self.config, self.participants, self.messages, clock=clock)

        self.running = False
        self.sweep_thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self.last_result: Optional[SweepResult] = None
        self.last_sweep_ts: float = 0.0

    def attach_stores(self, participants: PresenceStore, messages: MessageLog) -> None:
        """Swap the backing stores (e.g. to the database ones at startup)."""
        self.participants = participants
        self.messages = messages
        self.sweeper = InactivitySweeper(self.config, participants, messages, clock=self._clock)

    async def reset(self) -> None:
        await self.participants.clear()
        await self.messages.clear()
        self.last_result = None
        self.last_sweep_ts = 0.0

    # --- Request-side operations ---

    async def register(self, name: Optional[str]) -> Participant:
        name = name.strip() if isinstance(name, str) else ""
        if not name:
            raise InvalidPayload("name must be a non-empty string")
        if len(name) > MAX_NAME_LENGTH:
            raise InvalidPayload(f"name must be at most {MAX_NAME_LENGTH} characters")
        now = self._clock()
        participant = await self.participants.add(name, now)
        await self.messages.append(status_message(name, JOINED_TEXT, EVERYONE, format_clock(now)))
        metrics.increment_event("room.registered")
        logger.info("participant_joined", extra={"participant": name, "action_context": "room:register"})
        return participant

    async def list_participants(self) -> List[Participant]:
        return await self.participants.list_all()

    async def post_message(self, sender: Optional[str], to: Optional[str], text: Optional[str], message_type: Optional[str]) -> Message:
        if not sender or await self.participants.get(sender) is None:
            raise UnknownParticipant(sender)
        to = to.strip() if isinstance(to, str) else ""
        text = text.strip() if isinstance(text, str) else ""
        if not to:
            raise InvalidPayload("to must be a non-empty string")
        if len(to) > MAX_NAME_LENGTH:
            raise InvalidPayload(f"to must be at most {MAX_NAME_LENGTH} characters")
        if not text:
            raise InvalidPayload("text must be a non-empty string")
        if message_type not in POSTABLE_TYPES:
            raise InvalidPayload(f"type must be one of {sorted(POSTABLE_TYPES)}")
        message = Message(sender=sender, to=to, text=text, type=message_type, time=format_clock(self._clock()))
        await self.messages.append(message)
        metrics.increment_event("room.messages")
        return message

    async def messages_for(self, user: Optional[str], limit: Optional[int] = None) -> List[Message]:
        if limit is not None and (isinstance(limit, bool) or not isinstance(limit, int) or limit < 1):
            raise InvalidPayload("limit must be a positive integer")
        return await self.messages.visible_to(user, limit)

    async def ping(self, user: Optional[str]) -> None:
        if not user or not await self.participants.touch(user, self._clock()):
            raise UnknownParticipant(user)

    # --- Inactivity sweep lifecycle ---

    def start_sweeper(self) -> None:
        """Start the periodic sweep in a separate thread."""
        if self.sweep_thread is not None and self.sweep_thread.is_alive() and not self.running:
            logger.warning(
                "Previous inactivity sweeper is still running; not starting another",
                extra={"action_context": "loop:inactivity_sweep"},
            )
            return
        if not self.running:
            self.config.check()
            self.running = True
            self._stop_event.clear()
            self.sweep_thread = threading.Thread(target=self._sweep_loop, name="inactivity-sweeper", daemon=True)
            self.sweep_thread.start()
            logger.info(
                "Inactivity sweeper started",
                extra={
                    "sweep_period_ms": self.config.sweep_period_ms,
                    "staleness_threshold_ms": self.config.staleness_threshold_ms,
                },
            )

    def stop_sweeper(self) -> None:
        """Stop the sweep thread; an in-flight sweep finishes first."""
        self.running = False
        self._stop_event.set()
        if self.sweep_thread:
            self.sweep_thread.join(timeout=get_sweep_timeout_seconds() + 1.0)
            if self.sweep_thread.is_alive():
                logger.warning(
                    "Inactivity sweeper did not stop within the join timeout",
                    extra={"action_context": "loop:inactivity_sweep"},
                )
                return
            self.sweep_thread = None
            logger.info("Inactivity sweeper stopped")

    def run_sweep(self) -> Optional[SweepResult]:
        """Run one sweep from a non-loop thread, then log and record its outcome.

        Returns None only when the sweep could not be run at all (timeout).
        """
        start = time.perf_counter()
        try:
            result = run_and_wait(self.sweeper.sweep(), timeout=get_sweep_timeout_seconds(), op="inactivity_sweep")
        except Exception:
            metrics.increment_event("sweep.failed")
            logger.warning(
                "Inactivity sweep did not complete",
                extra={"action_context": "loop:inactivity_sweep"},
                exc_info=True,
            )
            return None
        self._record(result, time.perf_counter() - start)
        return result

    def _record(self, result: SweepResult, duration_s: float) -> None:
        self.last_result = result
        self.last_sweep_ts = time.time()
        metrics.increment_event("sweep.count")
        if result.evicted:
            metrics.increment_event("sweep.evicted", result.evicted)
        if result.notified:
            metrics.increment_event("sweep.notified", result.notified)
        if result.ok:
            if result.evicted:
                logger.info(
                    "sweep_evicted",
                    extra={
                        "evicted": result.evicted,
                        "participants": list(result.removed),
                        "cutoff_ms": result.cutoff_ms,
                        "duration_ms": duration_s * 1000.0,
                    },
                )
            return
        metrics.increment_event("sweep.partial" if result.removed else "sweep.failed")
        logger.warning(
            "Inactivity sweep failed: %s",
            result.error,
            extra={
                "evicted": result.evicted,
                "error_type": type(result.error).__name__,
                "action_context": "loop:inactivity_sweep",
            },
            exc_info=result.error,
        )

    def _sweep_loop(self) -> None:
        """Run one sweep per period until stopped.

        Uses time.monotonic() for scheduling to avoid wall-clock adjustments
        impacting cadence. Records sweep duration and start-time jitter.
        """
        period_s = self.config.sweep_period_s
        next_tick = time.monotonic() + period_s
        while self.running:
            if self._stop_event.wait(max(0.0, next_tick - time.monotonic())):
                break
            planned_start = next_tick
            actual_start = time.monotonic()
            self.run_sweep()
            metrics.record_sweep(time.monotonic() - actual_start, jitter_s=actual_start - planned_start)
            next_tick = planned_start + period_s
            # Skip ticks missed while a slow sweep was running
            if next_tick < time.monotonic():
                next_tick = time.monotonic() + period_s
