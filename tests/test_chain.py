# tests/test_chain.py
import threading
from typing import Optional, Set

import pytest

from carechain.chain.ledger import DEFAULT_GENESIS_SECRET, Ledger
from carechain.chain.seed import CARE_EPISODE, seed_care_episode
from carechain.core.canon import parse_json
from carechain.core.errors import (
    DirectoryNotConfiguredError,
    IndexOutOfRangeError,
    InvalidMessageError,
    NoKeyAvailableError,
    UnauthorizedError,
    UnknownOrgError,
)
from carechain.core.types import GENESIS_CONTENT, HealthMessage, Visibility
from carechain.crypto.codec import CipherMode, EnvelopeCodec, derive_key
from carechain.directory import OrgDirectory, StaticDirectory


class FakeDirectory(OrgDirectory):
    """Controlled validator set and keys; records which key ids were asked for."""

    def __init__(self, validators: Set[str], keys: dict):
        self.validators = validators
        self.keys = keys
        self.lookups = []

    def is_validator(self, org_id: str) -> bool:
        return org_id in self.validators

    def get_key(self, org_id: str) -> Optional[str]:
        self.lookups.append(org_id)
        return self.keys.get(org_id)

    def all_org_ids(self) -> Set[str]:
        return set(self.validators)


def test_genesis_block(ledger: Ledger):
    genesis = ledger.blocks[0]
    assert ledger.length == 1
    assert genesis.index == 0
    assert genesis.previous_hash == "0"
    assert genesis.added_by == "System"
    assert GENESIS_CONTENT not in genesis.ciphertext
    assert ledger.is_chain_valid()


def test_genesis_uses_shared_key(ledger: Ledger, directory: StaticDirectory):
    genesis = ledger.blocks[0]
    key = derive_key(directory.get_key("shared"))
    assert ledger.codec.decrypt(genesis.ciphertext, key) == GENESIS_CONTENT


def test_genesis_falls_back_to_system_key():
    fake = FakeDirectory({"Hospital"}, {"System": "SystemKey!"})
    ledger = Ledger(fake)
    assert fake.lookups[:2] == ["shared", "System"]
    assert ledger.codec.decrypt(ledger.blocks[0].ciphertext, derive_key("SystemKey!")) == GENESIS_CONTENT


def test_genesis_without_directory():
    ledger = Ledger()
    genesis = ledger.blocks[0]
    assert ledger.codec.decrypt(genesis.ciphertext, derive_key(DEFAULT_GENESIS_SECRET)) == GENESIS_CONTENT
    assert ledger.is_chain_valid()


def test_non_conforming_directory_rejected_at_construction():
    class DuckDirectory:
        def is_validator(self, org_id):
            return True

        def get_key(self, org_id):
            return "k"

    with pytest.raises(TypeError):
        Ledger(DuckDirectory())


def test_add_block_scenario(ledger: Ledger, lab_request: dict):
    genesis = ledger.blocks[0]
    block = ledger.add_block(lab_request, "Hospital")

    assert block.index == 1
    assert block.previous_hash == genesis.hash
    assert block.added_by == "Hospital"
    assert "Run CBC" not in block.ciphertext
    assert ledger.length == 2
    assert ledger.is_chain_valid()

    with pytest.raises(UnauthorizedError) as exc:
        ledger.add_block({**lab_request, "from": "Hacker"}, "Hacker")
    assert exc.value.org_id == "Hacker"
    assert ledger.length == 2


def test_add_block_accepts_health_message(ledger: Ledger):
    msg = HealthMessage(type="LAB_RESULT", sender="Lab", recipient="Hospital", content="WBC=15k")
    block = ledger.add_block(msg, "Lab")
    assert ledger.decrypt_message(block.index, "Hospital").message == msg


def test_add_block_requires_directory(lab_request: dict):
    ledger = Ledger()
    with pytest.raises(DirectoryNotConfiguredError):
        ledger.add_block(lab_request, "Hospital")
    assert ledger.length == 1


def test_attach_directory_recovers(lab_request: dict, directory: StaticDirectory):
    ledger = Ledger()
    ledger.attach_directory(directory)
    ledger.add_block(lab_request, "Hospital")
    assert ledger.length == 2
    # genesis was sealed with the hardcoded key, chain links still hold
    assert ledger.is_chain_valid()


def test_org_ids_case_sensitive(ledger: Ledger, lab_request: dict):
    with pytest.raises(UnauthorizedError):
        ledger.add_block(lab_request, "hospital")
    assert ledger.length == 1


def test_key_resolution_prefers_shared(lab_request: dict):
    fake = FakeDirectory({"Hospital"}, {"shared": "SharedKey!", "Hospital": "HospitalKey!"})
    ledger = Ledger(fake)
    block = ledger.add_block(lab_request, "Hospital")
    plaintext = ledger.codec.decrypt(block.ciphertext, derive_key("SharedKey!"))
    assert parse_json(plaintext)["content"] == "Run CBC"


def test_key_resolution_falls_back_to_org_key(lab_request: dict):
    fake = FakeDirectory({"Hospital", "Lab"}, {"Hospital": "HospitalKey!"})
    ledger = Ledger(fake)
    fake.lookups.clear()
    block = ledger.add_block(lab_request, "Hospital")
    assert fake.lookups == ["shared", "Hospital"]
    assert ledger.decrypt_message(block.index, "Lab").content == "Run CBC"


def test_no_key_available(lab_request: dict):
    fake = FakeDirectory({"Hospital"}, {})
    ledger = Ledger(fake)
    with pytest.raises(NoKeyAvailableError) as exc:
        ledger.add_block(lab_request, "Hospital")
    assert exc.value.org_ids == ("shared", "Hospital")
    assert ledger.length == 1


def test_invalid_message_leaves_chain_unchanged(ledger: Ledger):
    with pytest.raises(InvalidMessageError):
        ledger.add_block({"type": "LAB_REQUEST", "from": "Hospital"}, "Hospital")
    with pytest.raises(InvalidMessageError):
        ledger.add_block("plain text", "Hospital")
    assert ledger.length == 1


def test_add_message_checks_recipient(ledger: Ledger):
    block = ledger.add_message("LAB_REQUEST", "Hospital", "Lab", "Run CBC", patient_id="P101")
    assert block.index == 1
    with pytest.raises(UnknownOrgError):
        ledger.add_message("LAB_REQUEST", "Hospital", "Pharmacy", "Run CBC")
    assert ledger.length == 2


def test_chain_valid_after_many_appends(ledger: Ledger):
    seed_care_episode(ledger)
    assert ledger.length == len(CARE_EPISODE) + 1
    blocks = ledger.blocks
    for i in range(1, len(blocks)):
        assert blocks[i].index == i
        assert blocks[i].previous_hash == blocks[i - 1].hash
    assert ledger.is_chain_valid()


def test_seed_is_idempotent(ledger: Ledger):
    seed_care_episode(ledger)
    assert seed_care_episode(ledger) == []
    assert ledger.length == len(CARE_EPISODE) + 1


def test_tamper_detected(ledger: Ledger):
    seed_care_episode(ledger)
    original_hash = ledger.blocks[2].hash
    ledger.corrupt_block(2)

    tampered = ledger.blocks[2]
    assert tampered.ciphertext == "tampered-data"
    assert tampered.hash == original_hash
    assert not ledger.is_chain_valid()

    result = ledger.verify()
    assert result.first_failure.index == 2
    assert result.failing_indices == [2]
    assert result.first_failure.category == "hash"


def test_tamper_only_breaks_tampered_block(ledger: Ledger):
    seed_care_episode(ledger)
    ledger.corrupt_block(1)
    blocks = ledger.blocks
    for i in range(2, len(blocks)):
        assert blocks[i].is_intact()
        assert blocks[i].previous_hash == blocks[i - 1].hash


def test_corrupt_block_bounds(ledger: Ledger):
    with pytest.raises(IndexOutOfRangeError):
        ledger.corrupt_block(0)
    with pytest.raises(IndexOutOfRangeError):
        ledger.corrupt_block(5)


def test_viewer_redaction(ledger: Ledger, lab_request: dict):
    block = ledger.add_block(lab_request, "Hospital")

    for viewer in ("Hospital", "Lab"):
        view = ledger.decrypt_message(block.index, viewer)
        assert view.visibility is Visibility.VISIBLE
        assert view.content == "Run CBC"
        assert view.message.patient_id == "P101"

    outsider = ledger.decrypt_message(block.index, "Insurance")
    assert outsider.visibility is Visibility.HIDDEN
    assert outsider.type == "LAB_REQUEST"
    assert outsider.content == "[Encrypted]"
    assert outsider.message is None


def test_genesis_never_redacted(ledger: Ledger):
    view = ledger.decrypt_message(0, "Insurance")
    assert view.is_visible
    assert view.type == "GENESIS"
    assert view.content == GENESIS_CONTENT


def test_decrypt_index_out_of_range(ledger: Ledger):
    with pytest.raises(IndexOutOfRangeError):
        ledger.decrypt_message(1, "Hospital")
    with pytest.raises(IndexOutOfRangeError):
        ledger.decrypt_message(-1, "Hospital")


def test_decrypt_corrupted_block_returns_sentinel(ledger: Ledger):
    seed_care_episode(ledger)
    ledger.corrupt_block(1)
    view = ledger.decrypt_message(1, "Hospital")
    assert view.visibility is Visibility.CORRUPTED
    assert view.type == "UNKNOWN"
    assert view.content == "[Decryption Failed]"
    # neighbours still readable
    assert ledger.decrypt_message(2, "Lab").content == "Run CBC, CRP, Chest X-ray"


def test_decrypt_with_rotated_key_is_corrupted(lab_request: dict):
    fake = FakeDirectory({"Hospital", "Lab"}, {"shared": "OldKey!"})
    ledger = Ledger(fake)
    block = ledger.add_block(lab_request, "Hospital")
    fake.keys["shared"] = "NewKey!"
    assert ledger.decrypt_message(block.index, "Lab").visibility is Visibility.CORRUPTED


def test_decrypt_unknown_org(lab_request: dict):
    fake = FakeDirectory({"Hospital", "Lab"}, {"Hospital": "HospitalKey!"})
    ledger = Ledger(fake)
    block = ledger.add_block(lab_request, "Hospital")
    del fake.keys["Hospital"]
    view = ledger.decrypt_message(block.index, "Hospital")
    assert view.visibility is Visibility.UNKNOWN_ORG
    assert view.content == "[Unknown Organization]"


def test_get_chain_snapshot(ledger: Ledger):
    seed_care_episode(ledger)
    snapshot = ledger.get_chain("Insurance")
    assert snapshot.valid is True
    assert [b.index for b in snapshot.blocks] == list(range(len(CARE_EPISODE) + 1))

    visible_types = {b.payload.type for b in snapshot.blocks if b.payload.is_visible}
    assert visible_types == {"GENESIS", "CLAIM_SUBMISSION", "CLAIM_APPROVAL"}

    d = snapshot.to_dict()
    assert d["viewer"] == "Insurance"
    assert d["valid"] is True
    assert d["chain"][2]["data"] == {"type": "LAB_REQUEST", "content": "[Encrypted]", "visibility": "hidden"}


def test_get_chain_survives_corruption(ledger: Ledger):
    seed_care_episode(ledger)
    ledger.corrupt_block(3)
    snapshot = ledger.get_chain("Hospital")
    assert snapshot.valid is False
    assert len(snapshot.blocks) == len(CARE_EPISODE) + 1
    assert snapshot.blocks[3].payload.visibility is Visibility.CORRUPTED
    assert snapshot.blocks[4].payload.is_visible


def test_get_chain_survives_emptied_ciphertext(ledger: Ledger):
    seed_care_episode(ledger)
    ledger.corrupt_block(2, "")
    snapshot = ledger.get_chain("Hospital")
    assert snapshot.valid is False
    assert snapshot.blocks[2].payload.visibility is Visibility.CORRUPTED
    assert snapshot.blocks[2].payload.content == "[Decryption Failed]"
    assert snapshot.blocks[3].payload.is_visible

    matrix = ledger.access_matrix()
    assert all(view.visibility is Visibility.CORRUPTED for view in matrix[2].values())


def test_access_matrix(ledger: Ledger):
    seed_care_episode(ledger)
    matrix = ledger.access_matrix()
    assert sorted(matrix) == list(range(1, len(CARE_EPISODE) + 1))

    lab_request = matrix[2]
    assert lab_request["Hospital"].is_visible
    assert lab_request["Lab"].is_visible
    assert lab_request["Insurance"].visibility is Visibility.HIDDEN

    admission = matrix[1]
    assert [org for org, view in admission.items() if view.is_visible] == ["Hospital"]


def test_cbc_ledger_roundtrip(directory: StaticDirectory, lab_request: dict):
    ledger = Ledger(directory, codec=EnvelopeCodec(CipherMode.CBC))
    block = ledger.add_block(lab_request, "Hospital")
    assert ledger.decrypt_message(block.index, "Lab").content == "Run CBC"
    assert ledger.is_chain_valid()


def test_concurrent_appends_are_serialized(ledger: Ledger):
    orgs = ["Hospital", "Lab", "Insurance"]
    errors = []

    def worker(n: int):
        org = orgs[n % 3]
        try:
            for i in range(10):
                ledger.add_block({"type": "NOTE", "from": org, "to": "Hospital", "content": f"{n}-{i}"}, org)
        except Exception as e:  # pragma: no cover - surfaced by the assert below
            errors.append(e)

    threads = [threading.Thread(target=worker, args=(n,)) for n in range(6)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert ledger.length == 61
    assert [b.index for b in ledger.blocks] == list(range(61))
    assert ledger.is_chain_valid()


def test_blocks_returns_copy(ledger: Ledger):
    blocks = ledger.blocks
    blocks.append("not a block")
    assert ledger.length == 1
    assert len(list(ledger)) == 1
