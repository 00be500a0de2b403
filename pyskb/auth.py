"""Request signing for the SKB client API.

Every call to the backup server is authenticated independently: the exact
request body bytes are signed with the client's RSA private key
(PKCS#1 v1.5 padding, SHA-256 digest) and the base64 signature is sent in
the ``SIGNATURE`` header. Bodies that carry no file content embed a fresh
random nonce so that no two signed requests are identical.
"""

import base64
import json
import logging
import secrets
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from .exceptions import SkbConfigError, SkbSigningError
from .utils import NONCE_SIZE, SIGNATURE_HEADER

logger = logging.getLogger(__name__)


def generate_nonce() -> str:
    """Generate a random nonce, NONCE_SIZE bytes long, encoded in base64."""
    logger.debug("Generating random %d bytes long nonce", NONCE_SIZE)
    return base64.b64encode(secrets.token_bytes(NONCE_SIZE)).decode("ascii")


def serialize_body(payload: dict[str, Any]) -> bytes:
    """Serialize a JSON request body exactly once, in compact form."""
    return json.dumps(payload, separators=(",", ":")).encode("utf-8")


def load_private_key(path: Path) -> rsa.RSAPrivateKey:
    """Load the client's RSA private key from a PEM file.

    Args:
        path: Path to an unencrypted PEM private key

    Returns:
        The loaded RSA private key

    Raises:
        SkbConfigError: If the file is missing, undecodable or not an RSA key
    """
    logger.debug("Reading private RSA key file %s", path)
    try:
        content = path.read_bytes()
    except OSError as e:
        raise SkbConfigError(f"Could not read private key {path}: {e}") from e

    try:
        key = serialization.load_pem_private_key(content, password=None)
    except (ValueError, TypeError) as e:
        raise SkbConfigError(
            f"Could not decode key file {path}. "
            "Be sure that the file isn't encrypted"
        ) from e

    if not isinstance(key, rsa.RSAPrivateKey):
        raise SkbConfigError(f"Key file {path} does not contain an RSA private key")

    logger.info("Loaded private key from %s", path)
    return key


def generate_key_pair(key_size: int = 2048) -> rsa.RSAPrivateKey:
    """Generate a new RSA private key for client registration."""
    return rsa.generate_private_key(public_exponent=65537, key_size=key_size)


def private_key_pem(key: rsa.RSAPrivateKey) -> bytes:
    """Serialize a private key as unencrypted PEM."""
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    )


def public_key_pem(key: rsa.RSAPrivateKey) -> bytes:
    """Serialize the public half of a key in the format the server registers."""
    return key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )


@dataclass(frozen=True)
class SignedEnvelope:
    """A request body together with its signature."""

    body: bytes
    """Exact bytes sent on the wire"""

    signature: str
    """Base64 encoded signature over body"""

    nonce: Optional[str] = None
    """Nonce embedded in body (None for raw content uploads)"""

    @property
    def headers(self) -> dict[str, str]:
        """Headers carrying the signature."""
        return {SIGNATURE_HEADER: self.signature}


class Authenticator:
    """Builds signed request envelopes with the client's private key."""

    def __init__(self, private_key: rsa.RSAPrivateKey):
        """Initialize the authenticator.

        Args:
            private_key: Already loaded RSA private key
        """
        self._private_key = private_key

    def sign(self, body: bytes) -> str:
        """Sign the given bytes and return the signature encoded in base64.

        Raises:
            SkbSigningError: If the signature could not be computed
        """
        logger.debug("Signing %d byte body with SHA256withRSA", len(body))
        try:
            signature = self._private_key.sign(
                body, padding.PKCS1v15(), hashes.SHA256()
            )
        except Exception as e:
            raise SkbSigningError(f"Could not sign request body: {e}") from e
        return base64.b64encode(signature).decode("ascii")

    def build_envelope(
        self, payload: Optional[dict[str, Any]] = None
    ) -> SignedEnvelope:
        """Build a signed JSON body with a fresh nonce.

        For calls without a payload the body is just the nonce wrapper
        ``{"nonce": ...}``; otherwise the nonce is added as a sibling field.

        Args:
            payload: Optional JSON fields to send along with the nonce

        Returns:
            SignedEnvelope whose body must be sent unmodified
        """
        nonce = generate_nonce()
        data = dict(payload or {})
        data["nonce"] = nonce
        body = serialize_body(data)
        return SignedEnvelope(body=body, signature=self.sign(body), nonce=nonce)

    def sign_payload(self, data: bytes) -> SignedEnvelope:
        """Sign raw content (file uploads) without embedding a nonce."""
        return SignedEnvelope(body=data, signature=self.sign(data))
