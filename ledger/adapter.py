"""Interface to the external ledger that stores proposals and verifies vote proofs."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional, Sequence


@dataclass(frozen=True)
class Proposal:
    """Read-only proposal as stored on the ledger"""
    id: int
    title: str
    description: str
    creator: str
    yes_votes: int
    no_votes: int
    active: bool
    created_at: int

    @property
    def total_votes(self) -> int:
        return self.yes_votes + self.no_votes

    @property
    def yes_percentage(self) -> int:
        """Share of YES votes as a whole percent, rounded half up"""
        total = self.total_votes
        if total == 0:
            return 0
        return (200 * self.yes_votes + total) // (2 * total)

    @classmethod
    def from_raw(cls, raw: Any) -> 'Proposal':
        """Normalize a contract struct given as a mapping or a positional tuple"""
        if isinstance(raw, Mapping):
            get = raw.get
            return cls(
                id=int(get('id')),
                title=str(get('title', '')),
                description=str(get('description', '')),
                creator=str(get('creator', '')),
                yes_votes=int(get('yesVotes', get('yes_votes', 0))),
                no_votes=int(get('noVotes', get('no_votes', 0))),
                active=bool(get('active', False)),
                created_at=int(get('createdAt', get('created_at', 0))),
            )

        id_, title, description, creator, yes_votes, no_votes, active, created_at = raw
        return cls(int(id_), str(title), str(description), str(creator),
                   int(yes_votes), int(no_votes), bool(active), int(created_at))


@dataclass(frozen=True)
class TransactionReceipt:
    tx_hash: str
    block_number: Optional[int] = None
    gas_used: Optional[int] = None


class PendingTransaction(ABC):
    """Handle of a submitted write; resolves to a receipt or raises LedgerFailure"""

    tx_hash: str

    @abstractmethod
    async def wait(self) -> TransactionReceipt:
        ...


class LedgerAdapter(ABC):
    """
    Chain I/O used by the orchestrator. Write calls may raise LedgerFailure
    immediately (for example when the signer declines) or return a
    PendingTransaction whose wait() raises it.
    """

    account: Optional[str] = None

    @abstractmethod
    async def register(self, commitment: int) -> PendingTransaction:
        ...

    @abstractmethod
    async def vote(self, proposal_id: int, support: bool, p_a: Sequence[int],
                   p_b: Sequence[Sequence[int]], p_c: Sequence[int],
                   public_signals: Sequence[int]) -> PendingTransaction:
        ...

    @abstractmethod
    async def create_proposal(self, title: str, description: str) -> PendingTransaction:
        ...

    @abstractmethod
    async def close_proposal(self, proposal_id: int) -> PendingTransaction:
        ...

    @abstractmethod
    async def get_all_proposals(self) -> List[Proposal]:
        ...

    @abstractmethod
    async def has_voted(self, proposal_id: int, account: str) -> bool:
        """Legacy per-account check. Not meaningful for anonymous votes."""
