"""
Request codec for the parcel OpenAPI.

Every encrypted call carries its fields as one `regData` value:

    custNo=...&apprNo=...&weight=2  ->  SEED-128/ECB/PKCS7  ->  Base64

The transport URL-encodes the Base64 text; nothing here does.
"""
from __future__ import annotations

import base64
import binascii
import math
import re
from typing import Any, Mapping, Tuple

from cryptography.hazmat.decrepit.ciphers.algorithms import SEED
from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, modes

from epost_parcel.errors import ConfigurationError, InvalidParameterError

NUMERIC_FIELDS: Tuple[str, ...] = ("weight", "volume", "insuAmt")
FLAG_FIELDS: Tuple[str, ...] = ("microYn", "printYn", "insuYn", "delYn")
TEST_FLAG = "testYn"

_BLOCK_BITS = 128
_KEY_BYTES = 16

# "Y3" / "3N": a flag and a number that lost their delimiter.
_FUSED = re.compile(r"^(?:[YN]\d+(?:\.\d+)?|\d+(?:\.\d+)?[YN])$")


def _as_text(value: Any) -> str:
    if isinstance(value, bool):
        return "Y" if value else "N"
    return str(value)


def _is_positive_number(text: str) -> bool:
    try:
        number = float(text)
    except ValueError:
        return False
    return math.isfinite(number) and number > 0


def validate_fields(fields: Mapping[str, Any]) -> None:
    """Check every field and raise one InvalidParameterError naming all offenders."""
    problems: list[str] = []

    for key, raw in fields.items():
        if raw is None:
            continue
        if key == TEST_FLAG:
            problems.append(f"{key} (test flag must travel unencrypted)")
            continue

        text = _as_text(raw)
        if "&" in text:
            problems.append(f"{key}={text!r} (contains '&')")
            continue
        if key in FLAG_FIELDS + NUMERIC_FIELDS and _FUSED.match(text.strip()):
            problems.append(f"{key}={text!r} (flag fused with a number)")
            continue

        if key in FLAG_FIELDS and text not in ("Y", "N"):
            problems.append(f"{key}={text!r} (expected Y or N)")
        elif key in NUMERIC_FIELDS and not _is_positive_number(text):
            problems.append(f"{key}={text!r} (expected a positive number)")

    if problems:
        raise InvalidParameterError(problems)


def serialize(fields: Mapping[str, Any]) -> str:
    """`k=v&k=v` in the caller's order, skipping None."""
    return "&".join(f"{k}={_as_text(v)}" for k, v in fields.items() if v is not None)


def parse_serialized(text: str) -> dict[str, str]:
    out: dict[str, str] = {}
    for pair in text.split("&"):
        if not pair:
            continue
        key, _, value = pair.partition("=")
        out[key] = value
    return out


class RequestCodec:
    def __init__(self, cipher_key: str) -> None:
        key = (cipher_key or "").encode("utf-8")
        if len(key) != _KEY_BYTES:
            raise ConfigurationError(
                f"SEED-128 needs a {_KEY_BYTES}-byte key (got {len(key)}).",
                variable="EPOST_SECURITY_KEY",
            )
        self._key = key

    def _cipher(self) -> Cipher:
        return Cipher(SEED(self._key), modes.ECB())

    def encrypt(self, plaintext: str) -> str:
        padder = padding.PKCS7(_BLOCK_BITS).padder()
        padded = padder.update(plaintext.encode("utf-8")) + padder.finalize()
        enc = self._cipher().encryptor()
        return base64.b64encode(enc.update(padded) + enc.finalize()).decode("ascii")

    def decrypt(self, token: str) -> str:
        try:
            raw = base64.b64decode(token, validate=True)
        except (binascii.Error, ValueError) as ex:
            raise InvalidParameterError(f"regData is not valid Base64 ({ex})") from ex
        dec = self._cipher().decryptor()
        unpadder = padding.PKCS7(_BLOCK_BITS).unpadder()
        try:
            padded = dec.update(raw) + dec.finalize()
            plain = unpadder.update(padded) + unpadder.finalize()
        except ValueError as ex:
            raise InvalidParameterError("regData did not decrypt with this key") from ex
        return plain.decode("utf-8")

    def encode(self, fields: Mapping[str, Any]) -> str:
        validate_fields(fields)
        return self.encrypt(serialize(fields))

    def decode(self, token: str) -> dict[str, str]:
        return parse_serialized(self.decrypt(token))


__all__ = [
    "NUMERIC_FIELDS",
    "FLAG_FIELDS",
    "TEST_FLAG",
    "RequestCodec",
    "validate_fields",
    "serialize",
    "parse_serialized",
]
