# carechain/__init__.py
"""
carechain — permissioned, hash-chained ledger for sharing encrypted healthcare messages.
Proof-of-authority: only organizations in the validator set may append; every payload is
AES-encrypted before it is committed, and each viewer only sees messages it sent or received.
"""

__version__ = "0.1.0"

from carechain.core.errors import (
    DecryptionError,
    DirectoryNotConfiguredError,
    IndexOutOfRangeError,
    InvalidMessageError,
    LedgerError,
    MalformedEnvelopeError,
    MissingCiphertextError,
    MissingKeyError,
    NoKeyAvailableError,
    UnauthorizedError,
    UnknownOrgError,
)
from carechain.core.types import Block, HealthMessage, MessageView, Visibility
from carechain.crypto.codec import CipherMode, EnvelopeCodec, derive_key
from carechain.directory import OrgDirectory, StaticDirectory, create_directory, demo_directory
from carechain.chain.ledger import Ledger
from carechain.verify.verifier import ChainVerifier, VerificationResult

__all__ = [
    "Block", "HealthMessage", "MessageView", "Visibility",
    "CipherMode", "EnvelopeCodec", "derive_key",
    "OrgDirectory", "StaticDirectory", "create_directory", "demo_directory",
    "Ledger", "ChainVerifier", "VerificationResult",
    "LedgerError", "UnauthorizedError", "DirectoryNotConfiguredError", "NoKeyAvailableError",
    "UnknownOrgError", "MissingKeyError", "MissingCiphertextError", "DecryptionError",
    "MalformedEnvelopeError", "IndexOutOfRangeError", "InvalidMessageError",
]
