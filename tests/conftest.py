"""Shared fixtures for the PySKB tests."""

import base64

import pytest
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding

from pyskb.auth import generate_key_pair
from pyskb.config import Config

API_URL = "https://skb.example.org/api/client/v1/"


@pytest.fixture(scope="session")
def rsa_key():
    """RSA private key shared by all tests (key generation is slow)."""
    return generate_key_pair(2048)


@pytest.fixture
def skb_config(rsa_key):
    """Configuration pointing at a fake backup server."""
    return Config(api_url=API_URL, private_key=rsa_key)


def verify_signature(key, signature: str, body: bytes) -> None:
    """Verify a base64 signature with the public half of key.

    Raises:
        cryptography.exceptions.InvalidSignature: If verification fails
    """
    key.public_key().verify(
        base64.b64decode(signature), body, padding.PKCS1v15(), hashes.SHA256()
    )


@pytest.fixture
def verify(rsa_key):
    """Signature check against the shared key."""

    def _verify(signature: str, body: bytes) -> None:
        verify_signature(rsa_key, signature, body)

    return _verify
