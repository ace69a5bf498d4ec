# tests/conftest.py
import pytest

from carechain.chain.ledger import Ledger
from carechain.directory import StaticDirectory, demo_directory

SHARED_SECRET = "TestConsortiumKey!"


@pytest.fixture
def directory() -> StaticDirectory:
    return demo_directory(shared_secret=SHARED_SECRET)


@pytest.fixture
def ledger(directory: StaticDirectory) -> Ledger:
    return Ledger(directory)


@pytest.fixture
def lab_request() -> dict:
    return {
        "type": "LAB_REQUEST",
        "from": "Hospital",
        "to": "Lab",
        "patientId": "P101",
        "content": "Run CBC",
    }
