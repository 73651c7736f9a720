"""
Encryption envelope for stored peer configurations.

Configs are sealed with AES-256-GCM. The stored form is three hex segments
joined by ':' -- nonce:authTag:ciphertext. Postgres may hand bytea columns back
as '\\x' followed by the hex of that text; parse_envelope accepts both.
"""
import base64
import binascii
import logging
import os
import re
from typing import Tuple

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from wgportal.core.exceptions import AuthenticationFailed, InvalidKey, MalformedCiphertext

logger = logging.getLogger(__name__)

KEY_BYTES = 32
NONCE_BYTES = 16
TAG_BYTES = 16

_HEX_RE = re.compile(r"^[0-9a-fA-F]*$")
_BASE64_MARKERS = ("=", "+", "/")
_BYTEA_PREFIX = "\\x"


def normalize_key(key: str) -> bytes:
    """
    Decode a configured key to exactly 32 bytes.

    Keys containing '=', '+' or '/' are read as base64, anything else must be hex.
    Raises InvalidKey on empty, malformed or wrongly sized keys.
    """
    if key is None:
        raise InvalidKey("Encryption key is empty")
    candidate = key.strip()
    if not candidate:
        raise InvalidKey("Encryption key is empty")

    if any(marker in candidate for marker in _BASE64_MARKERS):
        try:
            raw = base64.b64decode(candidate, validate=True)
        except (binascii.Error, ValueError):
            raise InvalidKey("Encryption key is not valid base64")
    else:
        if len(candidate) % 2 or not _HEX_RE.match(candidate):
            raise InvalidKey("Encryption key is not valid hex")
        raw = bytes.fromhex(candidate)

    if len(raw) != KEY_BYTES:
        raise InvalidKey(f"Encryption key must decode to {KEY_BYTES} bytes, got {len(raw)}")
    return raw


def _unhex(segment: str, name: str) -> bytes:
    if len(segment) % 2 or not _HEX_RE.match(segment):
        raise MalformedCiphertext(f"Ciphertext {name} is not valid hex")
    return bytes.fromhex(segment)


def parse_envelope(raw: str) -> Tuple[bytes, bytes, bytes]:
    """
    Split a stored envelope into (nonce, tag, ciphertext).

    Accepts 'nonce:tag:ciphertext' hex text, or the same text hex-encoded
    behind a '\\x' prefix.
    """
    if not isinstance(raw, str):
        raise MalformedCiphertext("Ciphertext must be text")

    text = raw.strip()
    if text.startswith(_BYTEA_PREFIX):
        try:
            text = _unhex(text[len(_BYTEA_PREFIX):], "wrapper").decode("ascii")
        except UnicodeDecodeError:
            raise MalformedCiphertext("Ciphertext wrapper does not contain ASCII text")

    parts = text.split(":")
    if len(parts) != 3:
        raise MalformedCiphertext(
            f"Invalid ciphertext format: expected 3 parts separated by ':', got {len(parts)}"
        )

    nonce = _unhex(parts[0], "nonce")
    tag = _unhex(parts[1], "auth tag")
    ciphertext = _unhex(parts[2], "body")

    if len(nonce) != NONCE_BYTES:
        raise MalformedCiphertext(f"Invalid nonce length: expected {NONCE_BYTES} bytes, got {len(nonce)}")
    if len(tag) != TAG_BYTES:
        raise MalformedCiphertext(f"Invalid auth tag length: expected {TAG_BYTES} bytes, got {len(tag)}")

    return nonce, tag, ciphertext


def encrypt(plaintext: str, key: str) -> str:
    """Encrypt UTF-8 text, returning 'nonce:authTag:ciphertext' in hex."""
    aead = AESGCM(normalize_key(key))
    nonce = os.urandom(NONCE_BYTES)
    sealed = aead.encrypt(nonce, plaintext.encode("utf-8"), None)
    # AESGCM appends the tag to the ciphertext
    body, tag = sealed[:-TAG_BYTES], sealed[-TAG_BYTES:]
    return f"{nonce.hex()}:{tag.hex()}:{body.hex()}"


def decrypt(raw: str, key: str) -> str:
    """Decrypt an envelope produced by encrypt(), verifying its auth tag."""
    aead = AESGCM(normalize_key(key))
    nonce, tag, body = parse_envelope(raw)
    try:
        plaintext = aead.decrypt(nonce, body + tag, None)
    except InvalidTag:
        raise AuthenticationFailed()
    return plaintext.decode("utf-8")
