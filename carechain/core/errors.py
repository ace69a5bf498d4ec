# carechain/core/errors.py
from typing import Iterable


class LedgerError(Exception):
    """Base class for every error raised by the ledger core."""


class UnauthorizedError(LedgerError):
    """Organization is not in the validator set; the append was refused."""

    def __init__(self, org_id: str):
        self.org_id = org_id
        super().__init__(f"{org_id} is NOT authorized to add data")


class DirectoryNotConfiguredError(LedgerError):
    def __init__(self, message: str = "No organization directory attached to the ledger"):
        super().__init__(message)


class NoKeyAvailableError(LedgerError):
    """None of the candidate identifiers resolved to key material."""

    def __init__(self, org_ids: Iterable[str]):
        self.org_ids = tuple(org_ids)
        super().__init__(f"No key available for: {', '.join(self.org_ids)}")


class UnknownOrgError(LedgerError):
    def __init__(self, org_id: str):
        self.org_id = org_id
        super().__init__(f"Unknown organization: {org_id}")


class MissingKeyError(LedgerError):
    pass


class MissingCiphertextError(LedgerError):
    pass


class DecryptionError(LedgerError):
    """Ciphertext is corrupt or was encrypted under a different key."""


class MalformedEnvelopeError(DecryptionError):
    """Envelope string could not be split into IV and ciphertext."""


class IndexOutOfRangeError(LedgerError, IndexError):
    def __init__(self, index: int, length: int):
        self.index = index
        self.length = length
        super().__init__(f"Block index {index} out of range (chain length {length})")


class InvalidMessageError(LedgerError, ValueError):
    """Structured message is missing required fields or has non-string values."""

    def __init__(self, missing: Iterable[str], reason: str = "required"):
        self.missing = tuple(missing)
        self.reason = reason
        super().__init__(f"{', '.join(self.missing)} {reason}")
