"""Credential lifecycle: cache checks, single-flight renewal, reconciliation."""

import asyncio
from collections.abc import Callable
from datetime import datetime
from typing import Protocol

import structlog

from arca.core.errors import (
    AuthorityError,
    CommunicationFault,
    ConflictFault,
    OrphanedRemoteTicket,
)
from arca.crypto.identity import IdentityStore
from arca.crypto.signing import sign_ticket_request
from arca.wsaa.cache import CredentialCache
from arca.wsaa.ticket import build_ticket_request
from arca.wsaa.types import CredentialPair, CredentialStatus, RenewalPolicy, utc_now

logger = structlog.get_logger(__name__)


class CredentialExchanger(Protocol):
    async def exchange(self, envelope: str) -> CredentialPair: ...


class CredentialManager:
    """Hands out a usable credential pair, renewing it when needed.

    Fresh pairs (beyond the renewal margin) are returned without locking.
    Otherwise all concurrent callers share one in-flight renewal, so the
    authority never sees two simultaneous ticket requests from this process.
    """

    def __init__(
        self,
        *,
        identities: IdentityStore,
        gateway: CredentialExchanger,
        cache: CredentialCache,
        policy: RenewalPolicy,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._identities = identities
        self._gateway = gateway
        self._cache = cache
        self._policy = policy
        self._clock = clock
        self._inflight: asyncio.Task[CredentialPair] | None = None

    async def get_credentials(self) -> CredentialPair:
        if self._cache.is_fresh(self._policy.renewal_margin):
            return self._cache.current

        if self._inflight is None:
            task = asyncio.create_task(self._renew())
            task.add_done_callback(self._clear_inflight)
            self._inflight = task
        return await asyncio.shield(self._inflight)

    def status(self) -> CredentialStatus:
        """Describe the cached pair without contacting the authority."""
        pair = self._cache.current
        if pair is None:
            return CredentialStatus(has_credentials=False)
        remaining = pair.expiration_time - self._clock()
        return CredentialStatus(
            has_credentials=True,
            token_length=len(pair.token),
            sign_length=len(pair.sign),
            expiration_time=pair.expiration_time,
            seconds_until_expiration=remaining.total_seconds(),
        )

    def _clear_inflight(self, task: asyncio.Task[CredentialPair]) -> None:
        if self._inflight is task:
            self._inflight = None
        # Marks a failure as retrieved even when every waiter was cancelled.
        if not task.cancelled():
            task.exception()

    async def _renew(self) -> CredentialPair:
        cached = self._cache.current
        logger.info("credentials_renewing", has_cached=cached is not None)
        try:
            fresh = await self._request_new_credentials()
        except ConflictFault as exc:
            return self._reuse_after_conflict(cached, exc)
        except AuthorityError as exc:
            if cached is not None and self._cache.is_valid():
                logger.warning(
                    "credentials_fallback_to_cache",
                    error_kind=exc.kind,
                    error=str(exc),
                    expiration=cached.expiration_time.isoformat(),
                )
                return cached
            logger.error(
                "credentials_renewal_failed", error_kind=exc.kind, error=str(exc)
            )
            raise

        self._cache.store(fresh)
        logger.info(
            "credentials_renewed",
            expiration=fresh.expiration_time.isoformat(),
        )
        return fresh

    async def _request_new_credentials(self) -> CredentialPair:
        identity = self._identities.get()
        ticket = build_ticket_request(self._clock(), self._policy.target_service)
        envelope = sign_ticket_request(identity, ticket)
        logger.debug(
            "ticket_signed", unique_id=ticket.unique_id, cms_length=len(envelope)
        )
        try:
            async with asyncio.timeout(self._policy.exchange_timeout):
                return await self._gateway.exchange(envelope)
        except TimeoutError as exc:
            raise CommunicationFault(
                f"loginCms did not answer within {self._policy.exchange_timeout}s"
            ) from exc

    def _reuse_after_conflict(
        self, cached: CredentialPair | None, exc: ConflictFault
    ) -> CredentialPair:
        """The authority still holds our ticket; keep using the cached copy."""
        if cached is None:
            logger.error("credentials_orphaned", error=str(exc))
            raise OrphanedRemoteTicket(
                "The authority reports an active ticket that is not cached locally."
            ) from exc

        now = self._clock()
        if cached.is_valid_at(now):
            logger.warning(
                "credentials_conflict_reuse",
                expiration=cached.expiration_time.isoformat(),
            )
            return cached

        extended = cached.model_copy(
            update={"expiration_time": now + self._policy.conflict_extension}
        )
        self._cache.store(extended)
        logger.warning(
            "credentials_conflict_extended",
            previous=cached.expiration_time.isoformat(),
            expiration=extended.expiration_time.isoformat(),
        )
        return extended
