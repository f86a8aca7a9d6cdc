# src/registry_auth/utils/hash.py
"""Keccak-256 helpers and username to userId derivation."""

from __future__ import annotations

from eth_utils import encode_hex, keccak

from registry_auth.core.errors import ClientInputError

USER_ID_LENGTH_BYTES = 32


def keccak_digest(data: bytes) -> bytes:
    """Return the Keccak-256 digest of the supplied data."""
    return keccak(primitive=data)


def derive_user_id(username: str) -> str:
    """Map a username to its registry identifier.

    The username is trimmed of surrounding whitespace and hashed as UTF-8.
    Blank usernames are rejected by callers, not here.

    Returns:
        ``0x``-prefixed lowercase hex of the 32-byte digest.
    """
    return encode_hex(keccak_digest(username.strip().encode("utf-8")))


def normalize_user_id(user_id: str) -> str:
    """Return the canonical lowercase form of a hex userId.

    Raises:
        ClientInputError: If the value is not 32 bytes of ``0x`` hex.
    """
    user_id_to_bytes(user_id)
    return user_id.strip().lower()


def user_id_to_bytes(user_id: str) -> bytes:
    """Decode a ``0x``-prefixed userId into its raw 32 bytes."""
    cleaned = user_id.strip()
    if not cleaned.lower().startswith("0x"):
        raise ClientInputError("invalid userId")
    try:
        raw = bytes.fromhex(cleaned[2:])
    except ValueError as err:
        raise ClientInputError("invalid userId") from err
    if len(raw) != USER_ID_LENGTH_BYTES:
        raise ClientInputError("invalid userId")
    return raw
