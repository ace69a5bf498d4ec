# carechain/crypto/hashing.py
import hashlib

from carechain.core.canon import canonical_json


def block_hash(index: int, timestamp: str, ciphertext: str, previous_hash: str, added_by: str) -> str:
    """
    SHA-256 over the canonical JSON of the hashed block fields.
    Field order and encoding are fixed by RFC 8785, so a hash recomputed later
    only differs from the stored one if a field value changed.
    """
    payload = {
        "index": index,
        "timestamp": timestamp,
        "ciphertext": ciphertext,
        "previous_hash": previous_hash,
        "added_by": added_by,
    }
    return hashlib.sha256(canonical_json(payload)).hexdigest()
