"""Signature recovery for Ethereum personal messages."""

from __future__ import annotations

from eth_account import Account
from eth_account.messages import encode_defunct
from eth_utils import to_checksum_address

from registry_auth.core.errors import SignatureInvalidError

SIGNATURE_LENGTH_BYTES = 65


def parse_signature(signature_hex: str) -> bytes:
    """Decode a 65-byte ``r || s || v`` signature given as hex.

    Raises:
        SignatureInvalidError: If the value is not 65 bytes of hex.
    """
    cleaned = signature_hex.strip()
    if cleaned[:2].lower() == "0x":
        cleaned = cleaned[2:]
    try:
        signature = bytes.fromhex(cleaned)
    except ValueError as err:
        raise SignatureInvalidError("invalid signature encoding") from err
    if len(signature) != SIGNATURE_LENGTH_BYTES:
        raise SignatureInvalidError("signature must be 65 bytes")
    return signature


def recover_address(message: bytes, signature: bytes | str) -> str:
    """Recover the checksummed address that signed ``message``.

    The message is wrapped with the EIP-191 personal-message prefix before
    recovery, matching what browser wallets do for ``personal_sign``. A
    well-formed signature by the "wrong" key still recovers some address;
    whether that address is allowed is decided elsewhere.

    Args:
        message: Exact bytes that were signed on the client.
        signature: Raw or hex-encoded 65-byte signature.

    Returns:
        The EIP-55 checksummed signer address.

    Raises:
        SignatureInvalidError: If the signature is malformed or recovery fails.
    """
    signature_bytes = parse_signature(signature) if isinstance(signature, str) else signature
    if len(signature_bytes) != SIGNATURE_LENGTH_BYTES:
        raise SignatureInvalidError("signature must be 65 bytes")
    try:
        recovered = Account.recover_message(
            encode_defunct(primitive=message),
            signature=signature_bytes,
        )
    except Exception as err:
        raise SignatureInvalidError("signature recovery failed") from err
    return to_checksum_address(recovered)
