import asyncio
from typing import List

from chatroom.core.config import EVERYONE, LEFT_TEXT, SweeperConfig
from chatroom.core.errors import PartialSweepFailure, StoreUnavailable
from chatroom.core.stores import InMemoryMessageLog, InMemoryPresenceStore
from chatroom.models import MessageType
from chatroom.systems import InactivitySweeper


class RecordingLog(InMemoryMessageLog):
    """Message log that remembers each append_many batch."""

    def __init__(self) -> None:
        super().__init__()
        self.batches: List[list] = []

    async def append_many(self, messages):
        self.batches.append(list(messages))
        await super().append_many(messages)


class FailingAppendLog(InMemoryMessageLog):
    async def append_many(self, messages):
        raise ConnectionError("message log offline")


class UnreachablePresence(InMemoryPresenceStore):
    async def find_stale(self, cutoff_ms):
        raise StoreUnavailable("presence store offline")


class PingDuringSweep(InMemoryPresenceStore):
    """Simulates a ping for `name` arriving right after the stale snapshot is read."""

    def __init__(self, name: str, ping_at: int) -> None:
        super().__init__()
        self._name = name
        self._ping_at = ping_at

    async def find_stale(self, cutoff_ms):
        stale = await super().find_stale(cutoff_ms)
        await self.touch(self._name, self._ping_at)
        return stale


CONFIG = SweeperConfig(sweep_period_ms=15000, staleness_threshold_ms=10000)


def _sweeper(participants=None, messages=None):
    participants = participants or InMemoryPresenceStore()
    messages = messages or RecordingLog()
    return InactivitySweeper(CONFIG, participants, messages, clock=lambda: 15000), participants, messages


def _names(participants):
    return sorted(p.name for p in asyncio.run(participants.list_all()))


def test_stale_participant_is_evicted_with_one_departure_message():
    sweeper, participants, messages = _sweeper()
    asyncio.run(participants.add("Ana", 0))

    result = asyncio.run(sweeper.sweep(15000))

    assert result.ok
    assert result.cutoff_ms == 5000
    assert result.removed == ("Ana",)
    assert _names(participants) == []
    log = asyncio.run(messages.visible_to("someone"))
    assert len(log) == 1
    departure = log[0]
    assert departure.sender == "Ana"
    assert departure.to == EVERYONE
    assert departure.text == LEFT_TEXT
    assert departure.type == MessageType.STATUS.value


def test_recently_pinged_participant_survives():
    sweeper, participants, messages = _sweeper()
    asyncio.run(participants.add("Bia", 0))
    asyncio.run(participants.touch("Bia", 14000))

    result = asyncio.run(sweeper.sweep(15000))

    assert result.ok and result.evicted == 0
    assert _names(participants) == ["Bia"]
    assert messages.batches == []


def test_participant_exactly_at_cutoff_is_not_stale():
    sweeper, participants, _ = _sweeper()
    asyncio.run(participants.add("Edge", 5000))

    result = asyncio.run(sweeper.sweep(15000))

    assert result.removed == ()
    assert _names(participants) == ["Edge"]


def test_empty_store_performs_no_side_effects():
    sweeper, participants, messages = _sweeper()

    result = asyncio.run(sweeper.sweep())

    assert result.ok
    assert result.removed == ()
    assert result.notified == 0
    assert messages.batches == []


def test_second_sweep_is_a_noop():
    sweeper, participants, messages = _sweeper()
    asyncio.run(participants.add("Ana", 0))
    asyncio.run(participants.add("Bia", 14000))

    first = asyncio.run(sweeper.sweep(15000))
    second = asyncio.run(sweeper.sweep(15000))

    assert first.removed == ("Ana",)
    assert second.removed == ()
    assert len(messages.batches) == 1
    assert len(messages) == 1


def test_n_stale_participants_are_announced_in_one_batch():
    sweeper, participants, messages = _sweeper()
    stale = [f"p{i}" for i in range(5)]
    for name in stale:
        asyncio.run(participants.add(name, 100))
    asyncio.run(participants.add("fresh", 12000))

    result = asyncio.run(sweeper.sweep(15000))

    assert sorted(result.removed) == stale
    assert result.notified == 5
    assert len(messages.batches) == 1
    assert sorted(m.sender for m in messages.batches[0]) == stale
    assert _names(participants) == ["fresh"]


def test_departure_time_uses_the_sweep_snapshot():
    from chatroom.core.time_utils import format_clock

    sweeper, participants, messages = _sweeper()
    asyncio.run(participants.add("Ana", 0))

    asyncio.run(sweeper.sweep(15000))

    assert messages.batches[0][0].time == format_clock(15000)


def test_ping_between_read_and_delete_keeps_participant():
    participants = PingDuringSweep("Ana", ping_at=14900)
    sweeper, _, messages = _sweeper(participants=participants)
    asyncio.run(participants.add("Ana", 0))
    asyncio.run(participants.add("Caio", 0))

    result = asyncio.run(sweeper.sweep(15000))

    assert result.removed == ("Caio",)
    assert _names(participants) == ["Ana"]
    assert [m.sender for m in messages.batches[0]] == ["Caio"]


def test_reregistration_after_eviction_creates_a_new_record():
    sweeper, participants, _ = _sweeper()
    asyncio.run(participants.add("Ana", 0))
    asyncio.run(sweeper.sweep(15000))

    again = asyncio.run(participants.add("Ana", 15000))

    assert again.last_status == 15000
    assert _names(participants) == ["Ana"]


def test_store_failure_is_returned_not_raised():
    sweeper, _, messages = _sweeper(participants=UnreachablePresence())

    result = asyncio.run(sweeper.sweep(15000))

    assert not result.ok
    assert isinstance(result.error, StoreUnavailable)
    assert result.removed == ()
    assert messages.batches == []


def test_unexpected_store_exception_is_wrapped_as_store_unavailable():
    class Broken(InMemoryPresenceStore):
        async def delete_stale(self, cutoff_ms, names=None):
            raise RuntimeError("boom")

    participants = Broken()
    asyncio.run(participants.add("Ana", 0))
    sweeper, _, _ = _sweeper(participants=participants)

    result = asyncio.run(sweeper.sweep(15000))

    assert isinstance(result.error, StoreUnavailable)
    assert isinstance(result.error.__cause__, RuntimeError)
    assert _names(participants) == ["Ana"]


def test_failed_departure_append_is_a_partial_failure():
    sweeper, participants, _ = _sweeper(messages=FailingAppendLog())
    asyncio.run(participants.add("Ana", 0))

    result = asyncio.run(sweeper.sweep(15000))

    assert isinstance(result.error, PartialSweepFailure)
    assert result.error.removed == ("Ana",)
    assert result.removed == ("Ana",)
    assert result.notified == 0
    # Presence state stays correct even though the notice was lost
    assert _names(participants) == []


def test_clock_is_used_when_no_time_given():
    participants = InMemoryPresenceStore()
    messages = RecordingLog()
    sweeper = InactivitySweeper(CONFIG, participants, messages, clock=lambda: 30000)
    asyncio.run(participants.add("Ana", 19999))

    result = asyncio.run(sweeper.sweep())

    assert result.now_ms == 30000
    assert result.cutoff_ms == 20000
    assert result.removed == ("Ana",)
