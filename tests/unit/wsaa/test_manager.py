"""Tests for the credential manager's renewal and reconciliation policy."""

import asyncio
from datetime import timedelta
from pathlib import Path

import pytest

from arca.core.errors import (
    CommunicationFault,
    ConflictFault,
    GenericProtocolFault,
    IdentityUnavailable,
    MalformedResponse,
    OrphanedRemoteTicket,
    UnclassifiedFault,
)
from arca.crypto.identity import IdentityStore
from arca.wsaa.cache import CredentialCache
from arca.wsaa.manager import CredentialManager
from arca.wsaa.types import CredentialPair, RenewalPolicy

POLICY = RenewalPolicy(target_service="ws_sr_padron_a13", exchange_timeout=1.0)


class FakeGateway:
    """Replays scripted outcomes and records every envelope it receives."""

    def __init__(self, *outcomes, delay: float = 0.0) -> None:
        self.outcomes = list(outcomes)
        self.envelopes: list[str] = []
        self.delay = delay

    @property
    def calls(self) -> int:
        return len(self.envelopes)

    async def exchange(self, envelope: str) -> CredentialPair:
        self.envelopes.append(envelope)
        if self.delay:
            await asyncio.sleep(self.delay)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def pair(clock, minutes: float, token: str = "tok") -> CredentialPair:
    return CredentialPair(
        token=token,
        sign=f"sig-{token}",
        expiration_time=clock() + timedelta(minutes=minutes),
    )


@pytest.fixture
def cache_path(tmp_path: Path) -> Path:
    return tmp_path / "cache.json"


@pytest.fixture
def build(pfx_path: Path, cache_path: Path, clock):
    """Factory for a manager around a fake gateway and optional cached pair."""

    def _build(gateway: FakeGateway, cached: CredentialPair | None = None, **kwargs):
        cache = CredentialCache(cache_path, clock)
        if cached is not None:
            cache.store(cached)
        manager = CredentialManager(
            identities=kwargs.pop("identities", IdentityStore(pfx_path, "1234")),
            gateway=gateway,
            cache=cache,
            policy=kwargs.pop("policy", POLICY),
            clock=clock,
        )
        return manager, cache

    return _build


class TestFreshWindow:
    """Cached pairs beyond the renewal margin are served locally."""

    async def test_absent_cache_triggers_renewal(self, build, clock) -> None:
        issued = pair(clock, 10)
        gateway = FakeGateway(issued)
        manager, cache = build(gateway)
        assert await manager.get_credentials() == issued
        assert gateway.calls == 1
        assert cache.current == issued

    async def test_repeated_calls_exchange_once(self, build, clock) -> None:
        gateway = FakeGateway(pair(clock, 10))
        manager, _ = build(gateway)
        for _ in range(5):
            await manager.get_credentials()
            clock.advance(timedelta(minutes=1))
        assert gateway.calls == 1

    async def test_fresh_cached_pair_skips_gateway(self, build, clock) -> None:
        cached = pair(clock, 5)
        gateway = FakeGateway()
        manager, _ = build(gateway, cached)
        assert await manager.get_credentials() == cached
        assert gateway.calls == 0

    async def test_blank_cached_record_is_renewed(
        self, build, clock, cache_path: Path
    ) -> None:
        expiration = (clock() + timedelta(minutes=9)).isoformat()
        cache_path.write_text(
            f'{{"token": "", "sign": "", "expirationTime": "{expiration}"}}'
        )
        issued = pair(clock, 10)
        gateway = FakeGateway(issued)
        manager, cache = build(gateway)
        cache.load()
        assert await manager.get_credentials() == issued
        assert gateway.calls == 1

    async def test_envelope_is_signed_ticket(self, build, clock) -> None:
        gateway = FakeGateway(pair(clock, 10))
        manager, _ = build(gateway)
        await manager.get_credentials()
        assert gateway.envelopes[0].startswith("MII")


class TestNearExpiry:
    """Pairs inside the margin are renewed, with the old pair as fallback."""

    async def test_renewal_replaces_cached_pair(
        self, build, clock, cache_path: Path
    ) -> None:
        renewed = pair(clock, 10, token="new")
        gateway = FakeGateway(renewed)
        manager, cache = build(gateway, pair(clock, 1, token="old"))
        assert await manager.get_credentials() == renewed
        assert cache.current == renewed
        assert CredentialCache(cache_path, clock).load() == renewed

    @pytest.mark.parametrize(
        "error",
        [
            CommunicationFault("down"),
            GenericProtocolFault("ns1:x", "bad"),
            UnclassifiedFault("boom"),
            MalformedResponse("junk"),
        ],
    )
    async def test_failure_falls_back_to_cached(self, build, clock, error) -> None:
        cached = pair(clock, 1)
        manager, _ = build(FakeGateway(error), cached)
        assert await manager.get_credentials() == cached

    async def test_identity_errors_are_fatal(self, build, clock, tmp_path) -> None:
        manager, _ = build(
            FakeGateway(),
            pair(clock, 1),
            identities=IdentityStore(tmp_path / "missing.pfx", "1234"),
        )
        with pytest.raises(IdentityUnavailable):
            await manager.get_credentials()


class TestExpiredOrAbsent:
    """Without a valid pair, failures propagate unchanged."""

    async def test_communication_fault_propagates(self, build, clock) -> None:
        error = CommunicationFault("down")
        manager, _ = build(FakeGateway(error), pair(clock, -1))
        with pytest.raises(CommunicationFault) as info:
            await manager.get_credentials()
        assert info.value is error

    async def test_protocol_fault_propagates_without_cache(self, build) -> None:
        manager, _ = build(FakeGateway(GenericProtocolFault("ns1:x", "bad")))
        with pytest.raises(GenericProtocolFault):
            await manager.get_credentials()

    async def test_failure_does_not_block_next_attempt(self, build, clock) -> None:
        issued = pair(clock, 10)
        gateway = FakeGateway(CommunicationFault("down"), issued)
        manager, _ = build(gateway)
        with pytest.raises(CommunicationFault):
            await manager.get_credentials()
        assert await manager.get_credentials() == issued
        assert gateway.calls == 2

    async def test_slow_exchange_times_out(self, build, clock) -> None:
        gateway = FakeGateway(pair(clock, 10), delay=0.5)
        policy = POLICY.model_copy(update={"exchange_timeout": 0.05})
        manager, _ = build(gateway, policy=policy)
        with pytest.raises(CommunicationFault):
            await manager.get_credentials()


class TestConflict:
    """The authority already holds a ticket for this identity."""

    async def test_expired_cached_pair_is_extended(
        self, build, clock, cache_path: Path
    ) -> None:
        cached = pair(clock, -3)
        manager, _ = build(FakeGateway(ConflictFault("ya posee TA")), cached)
        result = await manager.get_credentials()
        assert result.token == cached.token
        assert result.sign == cached.sign
        assert result.expiration_time == clock() + timedelta(minutes=8)
        assert CredentialCache(cache_path, clock).load() == result

    async def test_valid_cached_pair_returned_unchanged(self, build, clock) -> None:
        cached = pair(clock, 1)
        manager, _ = build(FakeGateway(ConflictFault("ya posee TA")), cached)
        assert await manager.get_credentials() == cached

    async def test_extension_window_is_configurable(self, build, clock) -> None:
        policy = POLICY.model_copy(update={"conflict_extension": timedelta(minutes=3)})
        manager, _ = build(
            FakeGateway(ConflictFault("ya posee TA")), pair(clock, -1), policy=policy
        )
        result = await manager.get_credentials()
        assert result.expiration_time == clock() + timedelta(minutes=3)

    async def test_no_cached_pair_is_orphaned(self, build) -> None:
        manager, _ = build(FakeGateway(ConflictFault("ya posee TA")))
        with pytest.raises(OrphanedRemoteTicket) as info:
            await manager.get_credentials()
        assert info.value.remediation
        assert info.value.retryable
        assert isinstance(info.value.__cause__, ConflictFault)


class TestSingleFlight:
    """Concurrent callers share one renewal."""

    async def test_concurrent_callers_share_one_exchange(self, build, clock) -> None:
        issued = pair(clock, 10)
        gateway = FakeGateway(issued, delay=0.05)
        manager, _ = build(gateway)
        results = await asyncio.gather(*(manager.get_credentials() for _ in range(10)))
        assert gateway.calls == 1
        assert all(r == issued for r in results)

    async def test_concurrent_callers_share_failure(self, build) -> None:
        gateway = FakeGateway(CommunicationFault("down"), delay=0.05)
        manager, _ = build(gateway)
        results = await asyncio.gather(
            *(manager.get_credentials() for _ in range(5)), return_exceptions=True
        )
        assert gateway.calls == 1
        assert all(isinstance(r, CommunicationFault) for r in results)


class TestStatus:
    """Tests for the health snapshot."""

    def test_without_credentials(self, build) -> None:
        manager, _ = build(FakeGateway())
        assert not manager.status().has_credentials

    def test_with_credentials(self, build, clock) -> None:
        manager, _ = build(FakeGateway(), pair(clock, 5, token="abcd"))
        status = manager.status()
        assert status.has_credentials
        assert status.token_length == 4
        assert status.sign_length == len("sig-abcd")
        assert status.seconds_until_expiration == 300
