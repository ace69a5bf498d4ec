# carechain/core/types.py
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from carechain.core.errors import InvalidMessageError
from carechain.crypto.hashing import block_hash

SYSTEM_ORG = "System"
GENESIS_PREVIOUS_HASH = "0"
GENESIS_TYPE = "GENESIS"
GENESIS_CONTENT = "System: Blockchain initialized for secure sharing"

REDACTED_MARKER = "[Encrypted]"
CORRUPTED_MARKER = "[Decryption Failed]"
UNKNOWN_ORG_MARKER = "[Unknown Organization]"
UNKNOWN_TYPE = "UNKNOWN"


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True)
class Block:
    """Single hash-linked entry holding one encrypted message. Never stores plaintext."""
    index: int
    timestamp: str
    ciphertext: str                 # envelope produced by the codec
    previous_hash: str              # hash of the preceding block, "0" for genesis
    added_by: str                   # authoring organization, "System" for genesis
    hash: str

    @classmethod
    def create(cls, index: int, ciphertext: str, previous_hash: str, added_by: str) -> "Block":
        """Build a block; timestamp and hash are assigned here and nowhere else."""
        timestamp = utc_now()
        digest = block_hash(index, timestamp, ciphertext, previous_hash, added_by)
        return cls(
            index=index,
            timestamp=timestamp,
            ciphertext=ciphertext,
            previous_hash=previous_hash,
            added_by=added_by,
            hash=digest,
        )

    def compute_hash(self) -> str:
        return block_hash(self.index, self.timestamp, self.ciphertext, self.previous_hash, self.added_by)

    def is_intact(self) -> bool:
        return self.hash == self.compute_hash()

    @property
    def is_genesis(self) -> bool:
        return self.index == 0

    def to_dict(self) -> dict:
        return {
            "index": self.index,
            "timestamp": self.timestamp,
            "ciphertext": self.ciphertext,
            "previousHash": self.previous_hash,
            "addedBy": self.added_by,
            "hash": self.hash,
        }


@dataclass(frozen=True)
class HealthMessage:
    """Structured message exchanged between organizations (plaintext before encryption)."""
    type: str
    sender: str                     # wire key "from"
    recipient: str                  # wire key "to"
    content: str
    patient_id: Optional[str] = None
    timestamp: str = field(default_factory=utc_now)

    REQUIRED = ("type", "from", "to", "content")

    def to_dict(self) -> dict:
        return {
            "type": self.type,
            "from": self.sender,
            "to": self.recipient,
            "patientId": self.patient_id,
            "content": self.content,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "HealthMessage":
        missing = [k for k in cls.REQUIRED if not data.get(k)]
        if missing:
            raise InvalidMessageError(missing)
        # values are kept exactly as given; anything that isn't text is refused
        wrong_type = [k for k in cls.REQUIRED if not isinstance(data[k], str)]
        wrong_type += [k for k in ("patientId", "timestamp")
                       if data.get(k) is not None and not isinstance(data[k], str)]
        if wrong_type:
            raise InvalidMessageError(wrong_type, reason="must be strings")

        kwargs = {}
        if data.get("timestamp") is not None:
            kwargs["timestamp"] = data["timestamp"]
        return cls(
            type=data["type"],
            sender=data["from"],
            recipient=data["to"],
            content=data["content"],
            patient_id=data.get("patientId"),
            **kwargs,
        )

    def involves(self, org_id: str) -> bool:
        return org_id in (self.sender, self.recipient)


class Visibility(str, Enum):
    VISIBLE = "visible"
    HIDDEN = "hidden"               # viewer is neither sender nor recipient
    CORRUPTED = "corrupted"         # ciphertext did not decrypt or parse
    UNKNOWN_ORG = "unknown_org"     # no key resolvable for the block's author


@dataclass(frozen=True)
class MessageView:
    """What a given viewer gets to see of one block's payload."""
    visibility: Visibility
    type: str
    message: Optional[HealthMessage] = None

    @classmethod
    def visible(cls, message: HealthMessage) -> "MessageView":
        return cls(Visibility.VISIBLE, message.type, message)

    @classmethod
    def hidden(cls, message: HealthMessage) -> "MessageView":
        return cls(Visibility.HIDDEN, message.type)

    @classmethod
    def corrupted(cls) -> "MessageView":
        return cls(Visibility.CORRUPTED, UNKNOWN_TYPE)

    @classmethod
    def unknown_org(cls) -> "MessageView":
        return cls(Visibility.UNKNOWN_ORG, UNKNOWN_TYPE)

    @property
    def is_visible(self) -> bool:
        return self.visibility is Visibility.VISIBLE

    @property
    def content(self) -> str:
        if self.message is not None:
            return self.message.content
        if self.visibility is Visibility.CORRUPTED:
            return CORRUPTED_MARKER
        if self.visibility is Visibility.UNKNOWN_ORG:
            return UNKNOWN_ORG_MARKER
        return REDACTED_MARKER

    def to_dict(self) -> dict:
        if self.message is not None:
            d = self.message.to_dict()
        else:
            d = {"type": self.type, "content": self.content}
        d["visibility"] = self.visibility.value
        return d


@dataclass(frozen=True)
class BlockView:
    index: int
    added_by: str
    timestamp: str
    hash: str
    payload: MessageView

    @property
    def short_hash(self) -> str:
        return self.hash[:12] + "..."

    def to_dict(self) -> dict:
        return {
            "index": self.index,
            "addedBy": self.added_by,
            "timestamp": self.timestamp,
            "hash": self.hash,
            "data": self.payload.to_dict(),
        }


@dataclass(frozen=True)
class ChainSnapshot:
    """Whole chain as seen by one viewer, plus the overall validity flag."""
    viewer: str
    blocks: List[BlockView]
    valid: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "viewer": self.viewer,
            "valid": self.valid,
            "chain": [b.to_dict() for b in self.blocks],
        }
