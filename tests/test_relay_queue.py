"""Tests for the per-session relay pipeline."""

from __future__ import annotations

import asyncio

from roomrelay.core.relay_queue import RelayQueue, RelayTarget
from roomrelay.models.delivery import ProviderResult
from roomrelay.models.enums import DeleteOutcome
from roomrelay.models.policy import RetryPolicy
from roomrelay.models.session import Session
from roomrelay.providers.telegram.mock import MockTelegramProvider


def _queue(**kwargs: object) -> RelayQueue:
    defaults: dict[str, object] = {
        "settle_delay": 0.0,
        "delete_pacing": 0.0,
        "retry_policy": RetryPolicy(max_retries=2, base_delay_seconds=0.0, max_delay_seconds=0.0),
    }
    defaults.update(kwargs)
    return RelayQueue(**defaults)  # type: ignore[arg-type]


def _target(provider: MockTelegramProvider) -> RelayTarget:
    return RelayTarget(provider=provider, chat_id="9000", credential_id="bot-0")


def _not_found() -> ProviderResult:
    return ProviderResult(
        success=False,
        error="telegram_400",
        metadata={"description": "Bad Request: message to delete not found", "status_code": 400},
    )


def _too_old() -> ProviderResult:
    return ProviderResult(
        success=False,
        error="telegram_400",
        metadata={"description": "Bad Request: message can't be deleted", "status_code": 400},
    )


class TestSend:
    async def test_first_send_records_single_backlog_entry(self) -> None:
        bot = MockTelegramProvider()
        queue = _queue()
        session = Session(id=1, participant_name="Ann")

        result = await queue.send(session, "hello", _target(bot))

        assert result.provider_message_id == "1"
        assert session.last_relay_message_id == "1"
        assert queue.backlog(session) == ["1"]
        assert bot.deleted == []

    async def test_each_send_replaces_previous_notification(self) -> None:
        bot = MockTelegramProvider()
        queue = _queue()
        session = Session(id=1, participant_name="Ann")
        target = _target(bot)

        tasks = [queue.send(session, f"msg {i}", target) for i in range(5)]
        await asyncio.gather(*tasks)

        assert len(bot.sent) == 5
        assert bot.deleted_ids == ["1", "2", "3", "4"]
        assert queue.backlog(session) == ["5"]
        assert session.last_relay_message_id == "5"

    async def test_delete_precedes_next_send(self) -> None:
        bot = MockTelegramProvider()
        queue = _queue()
        session = Session(id=1, participant_name="Ann")
        target = _target(bot)

        queue.send(session, "a", target)
        queue.send(session, "b", target)
        await queue.drain(session)

        assert bot.calls == [("send", "1"), ("delete", "1"), ("send", "2")]

    async def test_settle_delay_only_after_a_delete(self) -> None:
        slept: list[float] = []

        async def fake_sleep(delay: float) -> None:
            slept.append(delay)

        bot = MockTelegramProvider()
        queue = _queue(settle_delay=0.3, sleep=fake_sleep)
        session = Session(id=1, participant_name="Ann")

        await queue.send(session, "a", _target(bot))
        assert slept == []
        await queue.send(session, "b", _target(bot))
        assert slept == [0.3]

    async def test_sessions_do_not_wait_on_each_other(self) -> None:
        gate = asyncio.Event()

        class SlowBot(MockTelegramProvider):
            async def send_message(self, chat_id: str, text: str) -> ProviderResult:
                if text == "slow":
                    await gate.wait()
                return await super().send_message(chat_id, text)

        bot = SlowBot()
        queue = _queue()
        first = Session(id=1, participant_name="Ann")
        second = Session(id=2, participant_name="Bob")

        blocked = queue.send(first, "slow", _target(bot))
        done = await queue.send(second, "fast", _target(bot))

        assert done.success
        assert not blocked.done()
        gate.set()
        await blocked

    async def test_reused_id_gets_fresh_backlog(self) -> None:
        bot = MockTelegramProvider()
        queue = _queue()
        old = Session(id=1, participant_name="Ann")
        await queue.send(old, "a", _target(bot))

        new = Session(id=1, participant_name="Bob")
        assert queue.backlog(new) == []
        await queue.send(new, "b", _target(bot))

        assert bot.deleted == []
        assert queue.backlog(old) == ["1"]
        assert queue.backlog(new) == ["2"]


class TestFailures:
    async def test_already_deleted_counts_as_success(self) -> None:
        bot = MockTelegramProvider()
        bot.delete_failures.append(_not_found())
        queue = _queue()
        session = Session(id=1, participant_name="Ann")
        target = _target(bot)

        await queue.send(session, "a", target)
        await queue.send(session, "b", target)

        assert queue.backlog(session) == ["2"]
        assert bot.calls.count(("delete", "1")) == 1

    async def test_too_old_is_not_retried(self) -> None:
        bot = MockTelegramProvider()
        bot.delete_failures.append(_too_old())
        queue = _queue()
        session = Session(id=1, participant_name="Ann")
        target = _target(bot)

        await queue.send(session, "a", target)
        await queue.send(session, "b", target)

        assert bot.calls.count(("delete", "1")) == 1
        assert session.last_relay_message_id == "2"

    async def test_transient_delete_is_retried(self) -> None:
        bot = MockTelegramProvider()
        bot.delete_failures.append(ProviderResult(success=False, error="timeout"))
        queue = _queue()
        session = Session(id=1, participant_name="Ann")
        target = _target(bot)

        await queue.send(session, "a", target)
        await queue.send(session, "b", target)

        assert bot.calls.count(("delete", "1")) == 2
        assert bot.deleted_ids == ["1"]

    async def test_retry_exhaustion_does_not_stall_chain(self) -> None:
        bot = MockTelegramProvider()
        bot.delete_failures.extend(
            ProviderResult(success=False, error="network") for _ in range(3)
        )
        queue = _queue()
        session = Session(id=1, participant_name="Ann")
        target = _target(bot)

        await queue.send(session, "a", target)
        result = await queue.send(session, "b", target)

        assert result.success
        assert bot.calls.count(("delete", "1")) == 3
        assert queue.backlog(session) == ["2"]

    async def test_failed_send_leaves_no_live_notification(self) -> None:
        bot = MockTelegramProvider()
        queue = _queue()
        session = Session(id=1, participant_name="Ann")
        target = _target(bot)
        await queue.send(session, "a", target)

        bot.send_failures.append(
            ProviderResult(success=False, error="telegram_403", metadata={"status_code": 403})
        )
        result = await queue.send(session, "b", target)

        assert not result.success
        assert session.last_relay_message_id is None
        assert queue.backlog(session) == []

    async def test_provider_exception_is_contained(self) -> None:
        class BrokenBot(MockTelegramProvider):
            async def delete_message(self, chat_id: str, message_id: str) -> ProviderResult:
                raise RuntimeError("boom")

        bot = BrokenBot()
        queue = _queue()
        session = Session(id=1, participant_name="Ann")
        target = _target(bot)

        await queue.send(session, "a", target)
        result = await queue.send(session, "b", target)

        assert result.success
        assert session.last_relay_message_id == "2"


class TestFinalize:
    async def test_finalize_purges_and_sends_summary(self) -> None:
        bot = MockTelegramProvider()
        queue = _queue()
        session = Session(id=1, participant_name="Ann")
        target = _target(bot)
        for text in ("a", "b", "c"):
            queue.send(session, text, target)

        summary = await queue.finalize(session, "summary", target)

        assert summary.success
        assert bot.sent_texts[-1] == "summary"
        assert bot.deleted_ids == ["1", "2", "3"]
        assert queue.backlog(session) == []
        assert session.last_relay_message_id is None

    async def test_finalize_waits_for_in_flight_send(self) -> None:
        bot = MockTelegramProvider()
        queue = _queue()
        session = Session(id=1, participant_name="Ann")
        target = _target(bot)

        queue.send(session, "a", target)
        await queue.finalize(session, "summary", target)

        assert bot.calls == [("send", "1"), ("delete", "1"), ("send", "2")]

    async def test_repeated_finalize_only_sends_summaries(self) -> None:
        bot = MockTelegramProvider()
        queue = _queue()
        session = Session(id=1, participant_name="Ann")
        target = _target(bot)

        first = await queue.finalize(session, "summary", target)
        second = await queue.finalize(session, "summary again", target)

        assert first.success and second.success
        assert bot.sent_texts == ["summary", "summary again"]
        assert bot.deleted == []
        assert queue.backlog(session) == []

    async def test_finalize_deletes_live_notification_missing_from_backlog(self) -> None:
        bot = MockTelegramProvider(first_message_id=50)
        queue = _queue()
        session = Session(id=1, participant_name="Ann", last_relay_message_id="7")
        target = _target(bot)

        await queue.finalize(session, "summary", target)

        assert bot.deleted_ids == ["7"]
        assert bot.sent_texts == ["summary"]
        assert session.last_relay_message_id is None

    async def test_finalize_paces_deletions(self) -> None:
        slept: list[float] = []

        async def fake_sleep(delay: float) -> None:
            slept.append(delay)

        bot = MockTelegramProvider()
        queue = _queue(delete_pacing=0.1, sleep=fake_sleep)
        session = Session(id=1, participant_name="Ann")
        target = _target(bot)
        await queue.send(session, "a", target)

        await queue.finalize(session, "summary", target)

        assert slept == [0.1]


class TestAnnounceAndRetire:
    async def test_announce_is_not_tracked(self) -> None:
        bot = MockTelegramProvider()
        queue = _queue()
        session = Session(id=1, participant_name="Ann")

        result = await queue.announce(session, "knock", _target(bot))

        assert result.provider_message_id == "1"
        assert queue.backlog(session) == []
        assert session.last_relay_message_id is None

    async def test_retire_runs_behind_queued_work(self) -> None:
        bot = MockTelegramProvider()
        queue = _queue()
        session = Session(id=1, participant_name="Ann")
        target = _target(bot)

        announced = queue.announce(session, "knock", target)
        outcome = await queue.retire(session, "1", target)

        assert announced.done()
        assert outcome is DeleteOutcome.DELETED
        assert bot.deleted_ids == ["1"]

    async def test_forget_drops_state_after_queued_work(self) -> None:
        bot = MockTelegramProvider()
        queue = _queue()
        session = Session(id=1, participant_name="Ann")
        target = _target(bot)

        queue.send(session, "a", target)
        await queue.forget(session)

        assert queue.backlog(session) == []
        assert bot.sent_texts == ["a"]
