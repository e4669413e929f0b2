"""
Credential Encoder for Ticketing Service.
Mints and parses the opaque codes printed on tickets.

A credential has four dot-separated parts:

    <ticket id hex>.<issue time, base36 ms>.<random, urlsafe>.<signature>

The random part carries at least 48 bits of entropy, so a credential cannot
be derived from the ticket id. The signature is a truncated HMAC-SHA256 over
the first three parts and lets scanners reject forged codes before any
storage lookup. It is never an authorization decision by itself: the ledger
lookup by credential is authoritative.
"""

import hashlib
import hmac
import json
import logging
import secrets
import time
import uuid
from dataclasses import dataclass
from typing import Optional

from ticketing.core.config import config
from ticketing.core.errors import ValidationError

logger = logging.getLogger(__name__)

SIGNATURE_LENGTH = 16
_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits))


class InvalidCredentialError(ValidationError):
    def __init__(self, reason: str) -> None:
        super().__init__("Invalid ticket credential", {"reason": reason})


@dataclass(frozen=True)
class CredentialParts:
    ticket_id: str
    issued_at_ms: int
    nonce: str


class CredentialEncoder:
    """Mints and verifies ticket credentials."""

    def __init__(self, secret: Optional[str] = None, random_bytes: int = 12):
        self._secret = secret
        self.random_bytes = max(6, random_bytes)

    async def configure(self):
        """Load the signing secret and entropy size from configuration."""
        if self._secret is None:
            ticketing_config = await config.get_ticketing_config()
            self._secret = ticketing_config["credential_secret"]
            self.random_bytes = ticketing_config["credential_random_bytes"]

    def _sign(self, body: str) -> str:
        if self._secret is None:
            raise RuntimeError("CredentialEncoder used before configure()")
        digest = hmac.new(self._secret.encode(), body.encode(), hashlib.sha256).hexdigest()
        return digest[:SIGNATURE_LENGTH]

    def mint(self, ticket_id: str, event_id: int, user_id: int) -> str:
        """
        Mint a fresh credential for a ticket.

        Only the ticket id is encoded. The event and the holder are resolved
        from the ledger when the credential is presented.
        """
        ticket_hex = uuid.UUID(ticket_id).hex
        issued_at = _to_base36(time.time_ns() // 1_000_000)
        nonce = secrets.token_urlsafe(self.random_bytes)
        body = f"{ticket_hex}.{issued_at}.{nonce}"
        logger.debug(f"Minted credential for ticket {ticket_id} (event {event_id}, user {user_id})")
        return f"{body}.{self._sign(body)}"

    def parse(self, credential: str) -> CredentialParts:
        """Split a credential into its parts without checking the signature."""
        if not credential or not isinstance(credential, str):
            raise InvalidCredentialError("empty")

        parts = credential.strip().split(".")
        if len(parts) != 4 or not all(parts):
            raise InvalidCredentialError("malformed")

        ticket_hex, issued_at, nonce, signature = parts
        try:
            ticket_id = str(uuid.UUID(hex=ticket_hex))
            issued_at_ms = int(issued_at, 36)
        except ValueError:
            raise InvalidCredentialError("malformed")

        if len(signature) != SIGNATURE_LENGTH:
            raise InvalidCredentialError("malformed")

        return CredentialParts(ticket_id=ticket_id, issued_at_ms=issued_at_ms, nonce=nonce)

    def verify(self, credential: str) -> str:
        """
        Check structure and signature of a credential.

        Returns:
            The ticket id encoded in the credential

        Raises:
            InvalidCredentialError: If the credential is malformed or forged
        """
        parts = self.parse(credential)
        body, signature = credential.strip().rsplit(".", 1)
        expected = self._sign(body)
        if not hmac.compare_digest(expected, signature):
            raise InvalidCredentialError("signature")
        return parts.ticket_id

    def extract_credential(self, scanned: str) -> str:
        """
        Accept either a bare credential or a scanned render_payload() string.
        Only the code field of a payload is used; its ids are ignored.
        """
        if not scanned or not isinstance(scanned, str) or not scanned.strip():
            raise InvalidCredentialError("empty")

        scanned = scanned.strip()
        if not scanned.startswith("{"):
            return scanned

        try:
            code = json.loads(scanned).get("code")
        except (ValueError, AttributeError):
            raise InvalidCredentialError("malformed")
        if not code or not isinstance(code, str):
            raise InvalidCredentialError("malformed")
        return code.strip()

    def render_payload(self, ticket) -> str:
        """
        Build the string handed to the optical-code renderer.
        The payload is informational; nothing reads authority from it.
        """
        return json.dumps({
            "ticketId": ticket.id,
            "eventId": ticket.event_id,
            "userId": ticket.user_id,
            "code": ticket.credential,
        }, separators=(",", ":"))


# Global encoder instance
credential_encoder = CredentialEncoder()
