"""Per-session serialized notification pipeline towards Telegram."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from roomrelay.core.errors import RelayPermanentError, RelayTransientError
from roomrelay.core.retry import retry_with_backoff
from roomrelay.core.sequencer import InMemorySequencer, SessionSequencer
from roomrelay.models.delivery import ProviderResult
from roomrelay.models.enums import DeleteOutcome
from roomrelay.models.policy import RetryPolicy
from roomrelay.models.session import Session
from roomrelay.providers.telegram.base import TelegramProvider, classify_failure

logger = logging.getLogger("roomrelay.relay")


@dataclass(frozen=True)
class RelayTarget:
    """Where a session's notifications go: one bot, one operator chat."""

    provider: TelegramProvider
    chat_id: str
    credential_id: str


class RelayQueue:
    """Keeps at most one live notification per session on the operator's chat.

    Every operation for a session passes through that session's chain in
    the order it was submitted, so two quick visitor messages can never
    both try to replace the same notification. Sessions do not wait on
    each other.

    The backlog (ids still to purge) is owned here and keyed by
    ``Session.key``, so a reused room id never inherits an older
    occupant's messages.
    """

    def __init__(
        self,
        sequencer: SessionSequencer | None = None,
        *,
        settle_delay: float = 0.3,
        delete_pacing: float = 0.1,
        retry_policy: RetryPolicy | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._sequencer = sequencer or InMemorySequencer()
        self._settle_delay = settle_delay
        self._delete_pacing = delete_pacing
        self._retry_policy = retry_policy or RetryPolicy()
        self._sleep = sleep
        self._backlogs: dict[str, list[str]] = {}

    # -- Public operations --

    def send(
        self, session: Session, text: str, target: RelayTarget
    ) -> asyncio.Task[ProviderResult]:
        """Replace the session's live notification with *text*."""
        return self._sequencer.submit(
            session.key,
            lambda: self._replace(session, text, target),
            name=f"relay_send:{session.key}",
        )

    def announce(
        self, session: Session, text: str, target: RelayTarget
    ) -> asyncio.Task[ProviderResult]:
        """Send a one-off notification that is not tracked in the backlog."""
        return self._sequencer.submit(
            session.key,
            lambda: self._send(target, text),
            name=f"relay_announce:{session.key}",
        )

    def retire(
        self, session: Session, message_id: str, target: RelayTarget
    ) -> asyncio.Task[DeleteOutcome]:
        """Delete one message behind whatever is already queued."""
        return self._sequencer.submit(
            session.key,
            lambda: self._delete(target, message_id),
            name=f"relay_retire:{session.key}",
        )

    def finalize(
        self, session: Session, text: str, target: RelayTarget
    ) -> asyncio.Task[ProviderResult]:
        """Purge the backlog and leave *text* as the only visible message."""
        return self._sequencer.submit(
            session.key,
            lambda: self._finalize(session, text, target),
            name=f"relay_finalize:{session.key}",
        )

    def forget(self, session: Session) -> asyncio.Task[None]:
        """Drop the session's relay state once its queued work has run."""

        async def _forget() -> None:
            self._backlogs.pop(session.key, None)

        return self._sequencer.submit(session.key, _forget, name=f"relay_forget:{session.key}")

    def backlog(self, session: Session) -> list[str]:
        return list(self._backlogs.get(session.key, []))

    async def drain(self, session: Session | None = None) -> None:
        await self._sequencer.drain(session.key if session is not None else None)

    async def close(self) -> None:
        await self._sequencer.close()
        self._backlogs.clear()

    # -- Chained steps --

    async def _replace(self, session: Session, text: str, target: RelayTarget) -> ProviderResult:
        backlog = self._backlogs.setdefault(session.key, [])
        previous = session.last_relay_message_id
        if previous is not None:
            await self._delete(target, previous)
            if previous in backlog:
                backlog.remove(previous)
            session.last_relay_message_id = None
            if self._settle_delay:
                await self._sleep(self._settle_delay)

        result = await self._send(target, text)
        if result.success and result.provider_message_id:
            session.last_relay_message_id = result.provider_message_id
            backlog.append(result.provider_message_id)
        return result

    async def _finalize(self, session: Session, text: str, target: RelayTarget) -> ProviderResult:
        backlog = self._backlogs.setdefault(session.key, [])
        live = session.last_relay_message_id
        if live is not None and live not in backlog:
            # Sessions restored from a snapshot arrive with an empty backlog.
            backlog.append(live)
        for message_id in list(backlog):
            await self._delete(target, message_id)
            backlog.remove(message_id)
            if self._delete_pacing:
                await self._sleep(self._delete_pacing)
        session.last_relay_message_id = None
        result = await self._send(target, text)
        backlog.clear()
        logger.info(
            "Finalized room %s",
            session.id,
            extra={"summary_message_id": result.provider_message_id},
        )
        return result

    # -- Bot API calls with failure classification --

    async def _send(self, target: RelayTarget, text: str) -> ProviderResult:
        try:
            return await retry_with_backoff(
                self._send_once,
                self._retry_policy,
                target,
                text,
                retry_on=(RelayTransientError,),
                sleep=self._sleep,
            )
        except RelayTransientError as exc:
            logger.warning("Giving up on send via %s: %s", target.credential_id, exc)
            return ProviderResult(success=False, error=str(exc))
        except Exception as exc:
            logger.exception("Send via %s failed", target.credential_id)
            return ProviderResult(success=False, error=str(exc))

    async def _send_once(self, target: RelayTarget, text: str) -> ProviderResult:
        result = await target.provider.send_message(target.chat_id, text)
        if result.success:
            return result
        if classify_failure(result) is DeleteOutcome.TRANSIENT:
            raise RelayTransientError(result.error or "transient send failure")
        logger.warning(
            "Send via %s rejected: %s",
            target.credential_id,
            result.error,
            extra={"metadata": result.metadata},
        )
        return result

    async def _delete(self, target: RelayTarget, message_id: str) -> DeleteOutcome:
        try:
            return await retry_with_backoff(
                self._delete_once,
                self._retry_policy,
                target,
                message_id,
                retry_on=(RelayTransientError,),
                sleep=self._sleep,
            )
        except RelayTransientError as exc:
            logger.warning("Giving up on deleting message %s: %s", message_id, exc)
            return DeleteOutcome.TRANSIENT
        except RelayPermanentError as exc:
            logger.info("Skipping message %s: %s", message_id, exc)
            return DeleteOutcome.TOO_OLD
        except Exception:
            logger.exception("Deleting message %s failed", message_id)
            return DeleteOutcome.FAILED

    async def _delete_once(self, target: RelayTarget, message_id: str) -> DeleteOutcome:
        result = await target.provider.delete_message(target.chat_id, message_id)
        outcome = classify_failure(result)
        if outcome is DeleteOutcome.TRANSIENT:
            raise RelayTransientError(result.error or "transient delete failure")
        if outcome is DeleteOutcome.TOO_OLD:
            raise RelayPermanentError(str(result.metadata.get("description", "too old to delete")))
        if outcome is DeleteOutcome.FAILED:
            logger.warning(
                "Delete of message %s failed: %s",
                message_id,
                result.error,
                extra={"metadata": result.metadata},
            )
        return outcome
