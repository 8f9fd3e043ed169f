"""Authenticated encryption of encoded visit records into QR tokens.

A token is ``base64url(ciphertext || tag || nonce)`` without padding. AES-GCM
gives confidentiality and integrity in one primitive, so a token either opens
to the exact bytes that were sealed or fails with ``InvalidToken``.
"""
import base64
import binascii
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from gatepass.config import KEY_SIZE
from gatepass.errors import InvalidToken

NONCE_SIZE = 12
TAG_SIZE = 16
ASSOCIATED_DATA = b"gatepass-token-v1"


def _check_key(key: bytes):
    if not isinstance(key, (bytes, bytearray)) or len(key) != KEY_SIZE:
        raise ValueError(f"QR key must be {KEY_SIZE} bytes")


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64decode(token: str) -> bytes:
    padded = token + "=" * (-len(token) % 4)
    raw = base64.b64decode(padded.encode("ascii"), altchars=b"-_", validate=True)
    # Only the canonical spelling is accepted, so a token has one text form.
    if _b64encode(raw) != token:
        raise ValueError("non-canonical base64url")
    return raw


def seal(key: bytes, data: bytes) -> str:
    _check_key(key)
    nonce = os.urandom(NONCE_SIZE)
    sealed = AESGCM(bytes(key)).encrypt(nonce, bytes(data), ASSOCIATED_DATA)
    return _b64encode(sealed + nonce)


def open_token(key: bytes, token: str) -> bytes:
    _check_key(key)
    if isinstance(token, bytes):
        try:
            token = token.decode("ascii")
        except UnicodeDecodeError:
            raise InvalidToken("token is not valid text") from None
    if not isinstance(token, str):
        raise InvalidToken("token is not valid text")

    try:
        raw = _b64decode(token)
    except (ValueError, binascii.Error, UnicodeEncodeError):
        raise InvalidToken("token is not valid base64url") from None

    if len(raw) < TAG_SIZE + NONCE_SIZE:
        raise InvalidToken("token is truncated")

    sealed, nonce = raw[:-NONCE_SIZE], raw[-NONCE_SIZE:]
    try:
        return AESGCM(bytes(key)).decrypt(nonce, sealed, ASSOCIATED_DATA)
    except InvalidTag:
        raise InvalidToken("token failed authentication") from None
