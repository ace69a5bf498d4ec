# carechain/verify/verifier.py
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from carechain.core.types import Block, GENESIS_PREVIOUS_HASH

# Failure categories, in the order the checks run
GENESIS = "genesis"
SEQUENCE = "sequence"
HASH = "hash"
LINK = "link"


@dataclass(frozen=True)
class VerificationFailure:
    index: int                      # position in the chain, -1 when there is no block at all
    category: str
    message: str


@dataclass
class VerificationResult:
    """Outcome of checking blocks [0, block_count) of one chain."""
    block_count: int
    tip_hash: Optional[str] = None  # stored hash of the last block checked
    failures: List[VerificationFailure] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return self.block_count > 0 and not self.failures

    @property
    def first_failure(self) -> Optional[VerificationFailure]:
        return min(self.failures, key=lambda f: f.index, default=None)

    @property
    def failing_indices(self) -> List[int]:
        return sorted({f.index for f in self.failures})

    @property
    def intact_prefix(self) -> int:
        """Number of leading blocks that can still be trusted."""
        first = self.first_failure
        return self.block_count if first is None else max(first.index, 0)

    def add(self, index: int, category: str, message: str) -> None:
        self.failures.append(VerificationFailure(index, category, message))

    def __bool__(self):
        return self.is_valid

    def __str__(self):
        if self.is_valid:
            return f"Chain is valid ✓ (blocks 0..{self.block_count - 1})"
        lines = [f"Verification FAILED ({len(self.failures)} issues, {self.intact_prefix} blocks intact):"]
        for f in sorted(self.failures, key=lambda f: f.index):
            lines.append(f"  • [{f.index}] {f.category}: {f.message}")
        return "\n".join(lines)


class ChainVerifier:
    """
    Recomputes every block hash and checks every backward link.
    Collects all failures instead of stopping at the first one.
    """

    def verify(self, chain: Sequence[Block]) -> VerificationResult:
        if not chain:
            result = VerificationResult(block_count=0)
            result.add(-1, GENESIS, "Chain has no genesis block")
            return result

        result = VerificationResult(block_count=len(chain), tip_hash=chain[-1].hash)

        genesis = chain[0]
        if genesis.previous_hash != GENESIS_PREVIOUS_HASH:
            result.add(0, GENESIS, "Genesis previous_hash is not the sentinel")
        if not genesis.is_intact():
            result.add(0, GENESIS, "Genesis hash does not match its contents")

        for position, block in enumerate(chain):
            if block.index != position:
                result.add(position, SEQUENCE, f"Index mismatch: expected {position}, got {block.index}")
            if position == 0:
                continue
            if not block.is_intact():
                result.add(position, HASH, "Stored hash does not match block contents")
            if block.previous_hash != chain[position - 1].hash:
                result.add(position, LINK, "previous_hash does not match previous block hash")

        return result
