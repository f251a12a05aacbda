"""Chain-side models produced by the feed adapter."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class BlockHeader:
    """Header of a finalized block as reported by the indexer feed."""

    height: int
    hash: str
    prev_hash: str
    timestamp: int  # nanoseconds since epoch


@dataclass(frozen=True)
class ChunkExecutionOutcome:
    """Execution outcome of a single receipt, attached to a shard's chunk."""

    shard_id: int
    receipt_id: str
    logs: tuple[str, ...] = ()
    status: str = "unknown"  # "success", "failure", "unknown"
    receiver_id: str = ""  # contract account the receipt executed on


@dataclass(frozen=True)
class FeedBlock:
    """One block emitted by the feed adapter, in height order."""

    header: BlockHeader
    outcomes: tuple[ChunkExecutionOutcome, ...] = field(default_factory=tuple)
    historical: bool = True  # False once the source reports it reached the head

    @property
    def height(self) -> int:
        return self.header.height
