# carechain/core/encoding.py
import binascii
from typing import Tuple

from carechain.core.errors import MalformedEnvelopeError

ENVELOPE_SEPARATOR = ":"


def hex_encode(data: bytes) -> str:
    """Encode bytes to lowercase hex."""
    return binascii.hexlify(data).decode("ascii")


def hex_decode(s: str) -> bytes:
    """Decode hex string back to bytes. Raises MalformedEnvelopeError on bad input."""
    try:
        return binascii.unhexlify(s)
    except (binascii.Error, ValueError) as e:
        raise MalformedEnvelopeError(f"Invalid hex in envelope: {e}") from e


def pack_envelope(iv: bytes, ciphertext: bytes) -> str:
    """hex(iv) + ':' + hex(ciphertext). The IV is not secret."""
    return hex_encode(iv) + ENVELOPE_SEPARATOR + hex_encode(ciphertext)


def unpack_envelope(envelope: str) -> Tuple[bytes, bytes]:
    """Split an envelope back into (iv, ciphertext)."""
    if ENVELOPE_SEPARATOR not in envelope:
        raise MalformedEnvelopeError("Envelope is missing the ':' delimiter")
    parts = envelope.split(ENVELOPE_SEPARATOR)
    if len(parts) != 2:
        raise MalformedEnvelopeError(f"Envelope must have 2 fields, got {len(parts)}")
    iv_hex, data_hex = parts
    if not iv_hex or not data_hex:
        raise MalformedEnvelopeError("Envelope has an empty field")
    return hex_decode(iv_hex), hex_decode(data_hex)
