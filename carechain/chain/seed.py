# carechain/chain/seed.py
from typing import List

from carechain.core.types import Block
from carechain.chain.ledger import Ledger

# (type, from, to, content) for one pneumonia admission, start to claim approval
CARE_EPISODE = [
    ("PATIENT_ADMISSION", "Hospital", "Hospital", "Admitted for pneumonia"),
    ("LAB_REQUEST", "Hospital", "Lab", "Run CBC, CRP, Chest X-ray"),
    ("LAB_RESULT", "Lab", "Hospital", "WBC=15k, CRP=120, X-ray: infiltrate"),
    ("CLAIM_SUBMISSION", "Hospital", "Insurance", "Request coverage for 5-day stay"),
    ("CLAIM_APPROVAL", "Insurance", "Hospital", "Approved up to $5,000"),
]


def seed_care_episode(ledger: Ledger, patient_id: str = "P101") -> List[Block]:
    """Preload a realistic conversation if only genesis exists."""
    if ledger.length > 1:
        return []
    return [
        ledger.add_block(
            {"type": msg_type, "from": sender, "to": recipient, "patientId": patient_id, "content": content},
            sender,
        )
        for msg_type, sender, recipient, content in CARE_EPISODE
    ]
