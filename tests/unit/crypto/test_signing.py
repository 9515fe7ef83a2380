"""Tests for CMS signing of ticket requests."""

import base64

import pytest
from cryptography.hazmat.primitives.asymmetric import dsa
from cryptography.hazmat.primitives.serialization import pkcs7

from arca.core.errors import SigningFailure
from arca.crypto.signing import sign_ticket_request
from arca.crypto.types import Identity
from arca.wsaa.ticket import build_ticket_request, serialize_ticket_request

SERVICE = "ws_sr_padron_a13"


class TestSignTicketRequest:
    """Tests for the Base64 CMS envelope."""

    def test_envelope_is_base64_der(self, identity: Identity, clock) -> None:
        ticket = build_ticket_request(clock(), SERVICE)
        envelope = sign_ticket_request(identity, ticket)
        der = base64.b64decode(envelope, validate=True)
        assert der[0] == 0x30  # DER SEQUENCE

    def test_embeds_exact_ticket_bytes(self, identity: Identity, clock) -> None:
        ticket = build_ticket_request(clock(), SERVICE)
        der = base64.b64decode(sign_ticket_request(identity, ticket))
        assert serialize_ticket_request(ticket) in der

    def test_embeds_only_signer_certificate(self, identity: Identity, clock) -> None:
        ticket = build_ticket_request(clock(), SERVICE)
        der = base64.b64decode(sign_ticket_request(identity, ticket))
        certificates = pkcs7.load_der_pkcs7_certificates(der)
        assert certificates == [identity.certificate]

    def test_unusable_key_raises_signing_failure(
        self, identity: Identity, clock
    ) -> None:
        dsa_key = dsa.generate_private_key(key_size=2048)
        broken = Identity.model_construct(
            private_key=dsa_key, certificate=identity.certificate
        )
        ticket = build_ticket_request(clock(), SERVICE)
        with pytest.raises(SigningFailure) as info:
            sign_ticket_request(broken, ticket)
        assert info.value.__cause__ is not None
