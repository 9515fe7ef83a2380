"""Error taxonomy for credential acquisition and Padron lookups.

Every error carries a stable ``kind`` string and a ``retryable`` flag so that
callers can decide between retrying later and reporting a hard failure.
"""

ORPHANED_TICKET_REMEDIATION = (
    "The authority already holds an active access ticket for this certificate "
    "and service, but its token and sign are not in the local cache and cannot "
    "be recovered. Wait for the remote ticket to expire (usually 10 to 15 "
    "minutes) and retry. Make sure no other process or host requests tickets "
    "with the same certificate."
)


class ArcaError(Exception):
    """Base class for all credential and lookup errors."""

    kind = "arca_error"
    retryable = False


class IdentityUnavailable(ArcaError):
    """The certificate container is missing, unreadable or locked."""

    kind = "identity_unavailable"


class SigningFailure(ArcaError):
    """The identity's key could not sign the ticket request."""

    kind = "signing_failure"


class AuthorityError(ArcaError):
    """Failure reported by, or while talking to, a remote ARCA service."""

    kind = "authority_error"


class EmptyResponse(AuthorityError):
    kind = "empty_response"


class MalformedResponse(AuthorityError):
    kind = "malformed_response"


class IncompleteCredentials(AuthorityError):
    kind = "incomplete_credentials"


class ConflictFault(AuthorityError):
    """The authority already holds an active ticket for this identity."""

    kind = "conflict_fault"
    retryable = True


class GenericProtocolFault(AuthorityError):
    """A SOAP fault other than the active-ticket conflict."""

    kind = "protocol_fault"

    def __init__(self, fault_code: str, fault_reason: str) -> None:
        super().__init__(f"SOAP fault {fault_code}: {fault_reason}")
        self.fault_code = fault_code
        self.fault_reason = fault_reason


class CommunicationFault(AuthorityError):
    """Transport failure: timeout, TLS, DNS, HTTP error or oversized reply."""

    kind = "communication_fault"
    retryable = True


class UnclassifiedFault(AuthorityError):
    kind = "unclassified_fault"


class OrphanedRemoteTicket(ArcaError):
    """A remote ticket exists that this process never captured."""

    kind = "orphaned_remote_ticket"
    retryable = True

    def __init__(self, message: str, remediation: str = ORPHANED_TICKET_REMEDIATION):
        super().__init__(f"{message} {remediation}")
        self.remediation = remediation


class PersonaNotFound(ArcaError):
    """The Padron service has no record for the requested identifier."""

    kind = "persona_not_found"
