"""Fixed pool of bot credentials leased one per session."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Callable, Iterable

from roomrelay.core.errors import PoolExhaustedError
from roomrelay.core.sequencer import InMemorySequencer, SessionSequencer
from roomrelay.models.lease import BotCredential, CredentialLease
from roomrelay.providers.telegram.base import TelegramProvider

logger = logging.getLogger("roomrelay.lease_pool")

ProviderFactory = Callable[[BotCredential], TelegramProvider]


class CredentialLeasePool:
    """Leases bot credentials to sessions and keeps their webhooks in step.

    Claiming and returning a credential are synchronous bookkeeping; the
    webhook calls that follow run through a per-credential chain, so a
    credential released and immediately leased again always has its old
    endpoint removed before the new one is registered.
    """

    def __init__(
        self,
        credentials: Iterable[BotCredential],
        provider_factory: ProviderFactory,
        *,
        webhook_base_url: str | None = None,
        sequencer: SessionSequencer | None = None,
    ) -> None:
        self._credentials: dict[str, BotCredential] = {c.id: c for c in credentials}
        self._provider_factory = provider_factory
        self._providers: dict[str, TelegramProvider] = {}
        self._free: deque[str] = deque(self._credentials)
        self._leases: dict[int | str, CredentialLease] = {}
        self._webhook_base_url = webhook_base_url.rstrip("/") if webhook_base_url else None
        self._sequencer = sequencer or InMemorySequencer()

    @property
    def size(self) -> int:
        return len(self._credentials)

    @property
    def available(self) -> int:
        return len(self._free)

    def lease_for(self, session_id: int | str) -> CredentialLease | None:
        return self._leases.get(session_id)

    def provider(self, credential_id: str) -> TelegramProvider:
        provider = self._providers.get(credential_id)
        if provider is None:
            provider = self._provider_factory(self._credentials[credential_id])
            self._providers[credential_id] = provider
        return provider

    def provider_for(self, session_id: int | str) -> TelegramProvider | None:
        lease = self._leases.get(session_id)
        return self.provider(lease.credential_id) if lease is not None else None

    def webhook_url(self, session_id: int | str) -> str | None:
        if self._webhook_base_url is None:
            return None
        return f"{self._webhook_base_url}/telegram-webhook/{session_id}"

    def claim(self, session_id: int | str) -> CredentialLease:
        """Bind a free credential to *session_id* without any I/O.

        Raises:
            PoolExhaustedError: If every credential is leased.
        """
        existing = self._leases.get(session_id)
        if existing is not None:
            return existing
        if not self._free:
            raise PoolExhaustedError(f"All {self.size} bot credentials are leased")
        credential_id = self._free.popleft()
        lease = CredentialLease(credential_id=credential_id, session_id=session_id)
        self._leases[session_id] = lease
        logger.info(
            "Leased credential %s to room %s",
            credential_id,
            session_id,
            extra={"available": len(self._free)},
        )
        return lease

    def reclaim(self, session_id: int | str, credential_id: str) -> CredentialLease:
        """Bind *credential_id* back to *session_id* after a restart.

        The credential's webhook still points at the session's endpoint, so
        no I/O happens here.

        Raises:
            PoolExhaustedError: If the credential is unknown or already leased.
        """
        existing = self._leases.get(session_id)
        if existing is not None and existing.credential_id == credential_id:
            return existing
        if existing is not None or credential_id not in self._free:
            raise PoolExhaustedError(
                f"Credential {credential_id} is not free for room {session_id}"
            )
        self._free.remove(credential_id)
        lease = CredentialLease(credential_id=credential_id, session_id=session_id)
        self._leases[session_id] = lease
        logger.info(
            "Reclaimed credential %s for room %s",
            credential_id,
            session_id,
            extra={"available": len(self._free)},
        )
        return lease

    async def lease(self, session_id: int | str) -> CredentialLease:
        """Claim a credential and register the session's callback endpoint."""
        lease = self.claim(session_id)
        url = self.webhook_url(session_id)
        if url is not None:
            await self._sequencer.submit(
                f"credential:{lease.credential_id}",
                lambda: self._register(lease.credential_id, url),
                name=f"set_webhook:{lease.credential_id}",
            )
        return lease

    def release_nowait(self, session_id: int | str) -> asyncio.Task[None] | None:
        """Return the session's credential now and deregister its endpoint later.

        Returns the deregistration task, or ``None`` when the session held
        no lease.
        """
        lease = self._leases.pop(session_id, None)
        if lease is None:
            logger.debug("No lease held by room %s", session_id)
            return None
        self._free.append(lease.credential_id)
        logger.info(
            "Released credential %s from room %s",
            lease.credential_id,
            session_id,
            extra={"available": len(self._free)},
        )
        if self._webhook_base_url is None:
            return None
        return self._sequencer.submit(
            f"credential:{lease.credential_id}",
            lambda: self._deregister(lease.credential_id),
            name=f"delete_webhook:{lease.credential_id}",
        )

    async def release(self, session_id: int | str) -> bool:
        """Return the session's credential to the pool. False if none was held."""
        held = session_id in self._leases
        task = self.release_nowait(session_id)
        if task is not None:
            await task
        return held

    async def _register(self, credential_id: str, url: str) -> None:
        result = await self.provider(credential_id).set_webhook(url)
        if not result.success:
            logger.warning(
                "Webhook registration failed for credential %s: %s",
                credential_id,
                result.error,
                extra={"url": url},
            )

    async def _deregister(self, credential_id: str) -> None:
        result = await self.provider(credential_id).delete_webhook()
        if not result.success:
            logger.warning(
                "Webhook removal failed for credential %s: %s",
                credential_id,
                result.error,
            )

    async def close(self) -> None:
        await self._sequencer.drain()
        for provider in self._providers.values():
            await provider.close()
        self._providers.clear()
