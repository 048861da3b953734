"""Agent identity and signed-request verification.

Every mutating request carries three headers:

    X-Agent-Id         the registered agent id
    X-Agent-Timestamp  unix seconds at signing time
    X-Agent-Signature  base64 Ed25519 signature over the canonical message

The canonical message is ``METHOD:PATH:TIMESTAMP:SHA256(BODY)`` (hex digest,
or the empty string when the body is empty), encoded as UTF-8.
"""

import base64
import binascii
import hashlib
import time
from dataclasses import dataclass

from cryptography.exceptions import InvalidSignature as BadSignatureError
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)
from fastapi import Request

from clawbuild.exceptions import (
    AuthFailure,
    InvalidSignature,
    MissingCredentials,
    StaleRequest,
    UnknownAgent,
    raise_http_exception,
)
from clawbuild.logging_config import bind_agent_context, get_logger
from clawbuild.repositories import AgentRepository

logger = get_logger(__name__)

AGENT_ID_HEADER = "X-Agent-Id"
SIGNATURE_HEADER = "X-Agent-Signature"
TIMESTAMP_HEADER = "X-Agent-Timestamp"

DEFAULT_MAX_SKEW_SECONDS = 300


# ---------------------------------------------------------------------------
# Cryptographic Identity
# ---------------------------------------------------------------------------


@dataclass
class AgentIdentity:
    """Represents an agent's cryptographic identity."""

    public_key: Ed25519PublicKey
    agent_id: str  # Derived from public key hash

    @classmethod
    def from_public_key_bytes(cls, public_key_bytes: bytes) -> "AgentIdentity":
        """Create identity from raw public key bytes (32 bytes)."""
        public_key = Ed25519PublicKey.from_public_bytes(public_key_bytes)
        agent_id = hashlib.sha256(public_key_bytes).hexdigest()[:32]
        return cls(public_key=public_key, agent_id=agent_id)

    @classmethod
    def from_public_key_base64(cls, b64: str) -> "AgentIdentity":
        """Create identity from base64-encoded public key."""
        public_key_bytes = base64.b64decode(b64, validate=True)
        return cls.from_public_key_bytes(public_key_bytes)

    def verify_signature(self, message: bytes, signature: bytes) -> bool:
        """Verify a signature from this agent."""
        try:
            self.public_key.verify(signature, message)
            return True
        except BadSignatureError:
            return False

    def get_public_key_base64(self) -> str:
        """Get base64-encoded raw public key."""
        raw_bytes = self.public_key.public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw,
        )
        return base64.b64encode(raw_bytes).decode()


def generate_agent_keypair() -> tuple[Ed25519PrivateKey, AgentIdentity]:
    """Generate a new agent keypair."""
    private_key = Ed25519PrivateKey.generate()
    public_key_bytes = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    )
    identity = AgentIdentity.from_public_key_bytes(public_key_bytes)
    return private_key, identity


# ---------------------------------------------------------------------------
# Canonical request message
# ---------------------------------------------------------------------------


def body_digest(body: bytes) -> str:
    return hashlib.sha256(body).hexdigest() if body else ""


def canonical_message(method: str, path: str, timestamp: str, body: bytes) -> bytes:
    return f"{method.upper()}:{path}:{timestamp}:{body_digest(body)}".encode("utf-8")


def sign_request(
    private_key: Ed25519PrivateKey,
    agent_id: str,
    method: str,
    path: str,
    body: bytes = b"",
    timestamp: int | None = None,
) -> dict[str, str]:
    """Build the three authentication headers for a request."""
    ts = str(int(time.time()) if timestamp is None else timestamp)
    signature = private_key.sign(canonical_message(method, path, ts, body))
    return {
        AGENT_ID_HEADER: agent_id,
        TIMESTAMP_HEADER: ts,
        SIGNATURE_HEADER: base64.b64encode(signature).decode(),
    }


@dataclass(frozen=True)
class AuthenticatedAgent:
    agent_id: str
    public_key: str


async def verify_signed_request(
    agents: AgentRepository,
    method: str,
    path: str,
    body: bytes,
    agent_id: str | None,
    signature: str | None,
    timestamp: str | None,
    max_skew_seconds: int = DEFAULT_MAX_SKEW_SECONDS,
    now: float | None = None,
) -> AuthenticatedAgent:
    """
    Verify a signed request. Pure check, no writes.

    Raises MissingCredentials, StaleRequest, UnknownAgent or InvalidSignature.
    """
    if not agent_id or not signature or not timestamp:
        raise MissingCredentials()

    try:
        ts = int(timestamp)
    except ValueError:
        raise StaleRequest()
    current = time.time() if now is None else now
    if abs(current - ts) > max_skew_seconds:
        raise StaleRequest()

    public_key = await agents.get_public_key(agent_id)
    if public_key is None:
        raise UnknownAgent(agent_id)

    try:
        identity = AgentIdentity.from_public_key_base64(public_key)
        signature_bytes = base64.b64decode(signature, validate=True)
    except (binascii.Error, ValueError):
        raise InvalidSignature()

    if not identity.verify_signature(
        canonical_message(method, path, timestamp, body), signature_bytes
    ):
        raise InvalidSignature()

    return AuthenticatedAgent(agent_id=agent_id, public_key=public_key)


# ---------------------------------------------------------------------------
# FastAPI Auth Dependency
# ---------------------------------------------------------------------------


async def get_current_agent(request: Request) -> AuthenticatedAgent:
    """
    FastAPI dependency: verify the signed-request headers.

    Returns the authenticated agent or raises 401.
    """
    database = request.app.state.database
    max_skew = request.app.state.auth_max_skew_seconds
    body = await request.body()

    try:
        async with database.session() as session:
            agent = await verify_signed_request(
                AgentRepository(session),
                method=request.method,
                path=request.url.path,
                body=body,
                agent_id=request.headers.get(AGENT_ID_HEADER),
                signature=request.headers.get(SIGNATURE_HEADER),
                timestamp=request.headers.get(TIMESTAMP_HEADER),
                max_skew_seconds=max_skew,
            )
    except AuthFailure as e:
        logger.info("auth_rejected", reason=e.error_type, path=request.url.path)
        raise_http_exception(e)

    bind_agent_context(agent.agent_id)
    return agent
