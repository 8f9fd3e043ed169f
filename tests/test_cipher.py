import base64
import os
import random

import pytest

from gatepass.errors import InvalidToken
from gatepass.services import cipher


def test_round_trip(key):
    for data in (b"", b"x", os.urandom(200)):
        assert cipher.open_token(key, cipher.seal(key, data)) == data


def test_token_is_url_safe_text(key):
    token = cipher.seal(key, os.urandom(64))
    assert isinstance(token, str)
    assert set(token) <= set("ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-_")


def test_fresh_nonce_per_seal(key):
    data = b"same record"
    assert cipher.seal(key, data) != cipher.seal(key, data)


def test_wrong_key(key):
    token = cipher.seal(key, b"record")
    with pytest.raises(InvalidToken):
        cipher.open_token(os.urandom(32), token)


def test_every_bit_flip_in_raw_token_fails(key):
    token = cipher.seal(key, b"guest-1|A1|2024-01-10")
    raw = bytearray(base64.urlsafe_b64decode(token + "=" * (-len(token) % 4)))
    for i in range(len(raw) * 8):
        flipped = bytearray(raw)
        flipped[i // 8] ^= 1 << (i % 8)
        tampered = base64.urlsafe_b64encode(bytes(flipped)).rstrip(b"=").decode()
        with pytest.raises(InvalidToken):
            cipher.open_token(key, tampered)


def test_random_bit_flips_in_token_text_fail(key):
    rng = random.Random(1234)
    token = cipher.seal(key, os.urandom(48))
    for _ in range(300):
        pos = rng.randrange(len(token))
        bit = 1 << rng.randrange(8)
        tampered = token[:pos] + chr(ord(token[pos]) ^ bit) + token[pos + 1:]
        with pytest.raises(InvalidToken):
            cipher.open_token(key, tampered)


@pytest.mark.parametrize("token", ["", "abc", "!!!!", "not base64 at all", "A" * 10])
def test_garbage_tokens(key, token):
    with pytest.raises(InvalidToken):
        cipher.open_token(key, token)


def test_padded_or_standard_alphabet_spellings_rejected(key):
    token = cipher.seal(key, b"abc")
    with pytest.raises(InvalidToken):
        cipher.open_token(key, token + "=")
    standard = token.replace("-", "+").replace("_", "/")
    if standard != token:
        with pytest.raises(InvalidToken):
            cipher.open_token(key, standard)


def test_truncated_token(key):
    token = cipher.seal(key, b"record")
    with pytest.raises(InvalidToken):
        cipher.open_token(key, token[:-4])


def test_non_text_token(key):
    with pytest.raises(InvalidToken):
        cipher.open_token(key, 12345)
    with pytest.raises(InvalidToken):
        cipher.open_token(key, b"\xff\xfe")


def test_key_must_be_256_bits():
    with pytest.raises(ValueError):
        cipher.seal(os.urandom(16), b"record")
