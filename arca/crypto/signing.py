"""CMS (PKCS#7) signing of login ticket requests."""

import base64

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.serialization import pkcs7

from arca.core.errors import SigningFailure
from arca.crypto.types import Identity
from arca.wsaa.ticket import serialize_ticket_request
from arca.wsaa.types import TicketRequest


def sign_bytes(identity: Identity, content: bytes) -> bytes:
    """Wrap ``content`` unaltered in DER SignedData with only the signer cert."""
    try:
        return (
            pkcs7.PKCS7SignatureBuilder()
            .set_data(content)
            .add_signer(identity.certificate, identity.private_key, hashes.SHA256())
            .sign(serialization.Encoding.DER, [pkcs7.PKCS7Options.Binary])
        )
    except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
        raise SigningFailure(f"Error signing ticket request: {exc}") from exc


def sign_ticket_request(identity: Identity, ticket: TicketRequest) -> str:
    """Sign the serialized TRA and return the Base64 CMS envelope."""
    signed = sign_bytes(identity, serialize_ticket_request(ticket))
    return base64.b64encode(signed).decode("ascii")
