# carechain/chain/ledger.py
import json
import logging
import threading
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Union

from carechain.core.canon import canonical_json_str, parse_json
from carechain.core.errors import (
    DecryptionError,
    DirectoryNotConfiguredError,
    IndexOutOfRangeError,
    InvalidMessageError,
    MissingCiphertextError,
    NoKeyAvailableError,
    UnauthorizedError,
    UnknownOrgError,
)
from carechain.core.types import (
    GENESIS_CONTENT,
    GENESIS_PREVIOUS_HASH,
    GENESIS_TYPE,
    SYSTEM_ORG,
    Block,
    BlockView,
    ChainSnapshot,
    HealthMessage,
    MessageView,
)
from carechain.crypto.codec import EnvelopeCodec, derive_key
from carechain.directory import SHARED_KEY_ID, OrgDirectory
from carechain.verify.verifier import ChainVerifier, VerificationResult

logger = logging.getLogger(__name__)

DEFAULT_GENESIS_SECRET = "MySecretKey123!"
TAMPERED_CIPHERTEXT = "tampered-data"

MessageLike = Union[HealthMessage, Mapping]


class Ledger:
    """
    Append-only, hash-chained sequence of encrypted blocks (proof-of-authority).

    Appends are serialized with a lock because every new block depends on the
    current tail. Readers work on a snapshot of the block list; a block only
    becomes part of the list once it is fully built and linked.
    """

    def __init__(self, directory: Optional[OrgDirectory] = None, codec: Optional[EnvelopeCodec] = None):
        self._directory = self._check_directory(directory)
        self.codec = codec or EnvelopeCodec()
        self.verifier = ChainVerifier()
        self._lock = threading.RLock()
        self._chain: List[Block] = [self.create_genesis_block()]

    @staticmethod
    def _check_directory(directory: Optional[OrgDirectory]) -> Optional[OrgDirectory]:
        if directory is not None and not isinstance(directory, OrgDirectory):
            raise TypeError(f"directory must implement OrgDirectory, got {type(directory).__name__}")
        return directory

    @property
    def directory(self) -> Optional[OrgDirectory]:
        return self._directory

    def attach_directory(self, directory: OrgDirectory) -> None:
        self._directory = self._check_directory(directory)

    # ------------------------------------------------------------------ state

    @property
    def length(self) -> int:
        return len(self._chain)

    def __len__(self) -> int:
        return self.length

    def __iter__(self) -> Iterator[Block]:
        return iter(self.blocks)

    @property
    def blocks(self) -> List[Block]:
        """Copy of the chain (readers never see a list being appended to)."""
        with self._lock:
            return list(self._chain)

    @property
    def last_block(self) -> Block:
        return self._chain[-1]

    def get_block(self, index: int) -> Block:
        chain = self.blocks
        if not 0 <= index < len(chain):
            raise IndexOutOfRangeError(index, len(chain))
        return chain[index]

    # ------------------------------------------------------------------- keys

    def _resolve_secret(self, *candidates: str) -> str:
        if self._directory is None:
            raise DirectoryNotConfiguredError()
        for org_id in candidates:
            secret = self._directory.get_key(org_id)
            if secret:
                return secret
        raise NoKeyAvailableError(candidates)

    def _genesis_secret(self) -> str:
        if self._directory is None:
            return DEFAULT_GENESIS_SECRET
        try:
            return self._resolve_secret(SHARED_KEY_ID, SYSTEM_ORG)
        except NoKeyAvailableError:
            return DEFAULT_GENESIS_SECRET

    # ----------------------------------------------------------------- append

    def create_genesis_block(self) -> Block:
        ciphertext = self.codec.encrypt(GENESIS_CONTENT, derive_key(self._genesis_secret()))
        return Block.create(0, ciphertext, GENESIS_PREVIOUS_HASH, SYSTEM_ORG)

    def add_block(self, message: MessageLike, org_id: str) -> Block:
        """
        Authorize → resolve key → encrypt → link to tail → append.
        Any failure leaves the chain untouched.
        """
        if self._directory is None:
            raise DirectoryNotConfiguredError()
        if not self._directory.is_validator(org_id):
            logger.warning("[carechain] %s is NOT authorized to add data", org_id)
            raise UnauthorizedError(org_id)

        key = derive_key(self._resolve_secret(SHARED_KEY_ID, org_id))
        msg = self._coerce_message(message)
        ciphertext = self.codec.encrypt(canonical_json_str(msg.to_dict()), key)

        with self._lock:
            tail = self._chain[-1]
            block = Block.create(tail.index + 1, ciphertext, tail.hash, org_id)
            self._chain.append(block)

        logger.info("[carechain] %s added block %d (%s)", org_id, block.index, msg.type)
        return block

    def add_message(
        self,
        type: str,
        sender: str,
        recipient: str,
        content: str,
        patient_id: Optional[str] = None,
    ) -> Block:
        """Convenience append that also checks the recipient is a known organization."""
        msg = HealthMessage.from_dict({
            "type": type, "from": sender, "to": recipient,
            "content": content, "patientId": patient_id,
        })
        if self._directory is None:
            raise DirectoryNotConfiguredError()
        if recipient not in self._directory.all_org_ids():
            raise UnknownOrgError(recipient)
        return self.add_block(msg, sender)

    @staticmethod
    def _coerce_message(message: MessageLike) -> HealthMessage:
        if isinstance(message, HealthMessage):
            return message
        if isinstance(message, Mapping):
            return HealthMessage.from_dict(message)
        raise InvalidMessageError(["type", "from", "to", "content"])

    # ------------------------------------------------------------- validation

    def verify(self) -> VerificationResult:
        return self.verifier.verify(self.blocks)

    def is_chain_valid(self) -> bool:
        return self.verify().is_valid

    # ---------------------------------------------------------------- reading

    def decrypt_message(self, block_index: int, viewer_org_id: str) -> MessageView:
        """
        Decrypt one block for one viewer. Never raises for bad ciphertext:
        an undecryptable block comes back as a CORRUPTED view.
        """
        block = self.get_block(block_index)
        if block.is_genesis:
            return MessageView.visible(HealthMessage(
                type=GENESIS_TYPE, sender=SYSTEM_ORG, recipient=SYSTEM_ORG,
                content=GENESIS_CONTENT, timestamp=block.timestamp,
            ))

        try:
            secret = self._resolve_secret(SHARED_KEY_ID, block.added_by)
        except NoKeyAvailableError:
            return MessageView.unknown_org()

        try:
            plaintext = self.codec.decrypt(block.ciphertext, derive_key(secret))
            msg = HealthMessage.from_dict(parse_json(plaintext))
        except (DecryptionError, MissingCiphertextError, InvalidMessageError,
                json.JSONDecodeError, TypeError, AttributeError) as e:
            logger.warning("[carechain] Block %d could not be decrypted: %s", block_index, e)
            return MessageView.corrupted()

        if msg.involves(viewer_org_id):
            return MessageView.visible(msg)
        return MessageView.hidden(msg)

    def get_chain(self, viewer_id: str) -> ChainSnapshot:
        chain = self.blocks
        views = [
            BlockView(
                index=block.index,
                added_by=block.added_by,
                timestamp=block.timestamp,
                hash=block.hash,
                payload=self.decrypt_message(i, viewer_id),
            )
            for i, block in enumerate(chain)
        ]
        return ChainSnapshot(viewer=viewer_id, blocks=views, valid=self.verifier.verify(chain).is_valid)

    def access_matrix(self, block_indices: Optional[Iterable[int]] = None) -> Dict[int, Dict[str, MessageView]]:
        """For each block, what every known organization gets to see."""
        if self._directory is None:
            raise DirectoryNotConfiguredError()
        orgs = sorted(self._directory.all_org_ids())
        indices = list(block_indices) if block_indices is not None else range(1, self.length)
        return {i: {org: self.decrypt_message(i, org) for org in orgs} for i in indices}

    # ------------------------------------------------------------------ tests

    def corrupt_block(self, index: int, garbage: str = TAMPERED_CIPHERTEXT) -> Block:
        """
        Tamper simulation: overwrite a block's ciphertext in place without
        recomputing its hash. Detected by verify() and by decrypt_message().
        """
        with self._lock:
            if not 0 < index < len(self._chain):
                raise IndexOutOfRangeError(index, len(self._chain))
            block = self._chain[index]
            object.__setattr__(block, "ciphertext", garbage)
        logger.warning("[carechain] Block %d ciphertext overwritten (tamper simulation)", index)
        return block
