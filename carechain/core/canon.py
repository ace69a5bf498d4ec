# carechain/core/canon.py
import json
from typing import Any

import jcs


def canonical_json(obj: Any) -> bytes:
    """
    Produce deterministic UTF-8 bytes according to RFC 8785 (JSON Canonicalization Scheme).
    Used both for block hashing and for serializing message payloads before encryption.
    """
    return jcs.canonicalize(obj)


def canonical_json_str(obj: Any) -> str:
    """Same as above, but returns string (this is what gets encrypted)."""
    return canonical_json(obj).decode("utf-8")


def parse_json(text: str) -> Any:
    return json.loads(text)
