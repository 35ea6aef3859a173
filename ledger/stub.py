"""
In-memory stand-in for the voting contract.

Enforces the same rules the deployed verifier does (registration uniqueness,
proposal state, proposal binding, nullifier spending) so the client can be
exercised without a chain. Proof validity is delegated to a pluggable check.
"""

import hashlib
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Set

from .adapter import LedgerAdapter, PendingTransaction, Proposal, TransactionReceipt
from .errors import LedgerFailure, Outcome, USER_REJECTED_CODE, contract_error

logger = logging.getLogger(__name__)

ProofCheck = Callable[[Sequence[int], Sequence[Sequence[int]], Sequence[int], Sequence[int]], bool]

DEFAULT_ACCOUNT = "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"


def accept_all_proofs(p_a, p_b, p_c, public_signals) -> bool:
    return True


class StubTransaction(PendingTransaction):
    """Transaction whose outcome is known at submission time"""

    def __init__(self, tx_hash: str, block_number: int,
                 failure: Optional[LedgerFailure] = None):
        self.tx_hash = tx_hash
        self.block_number = block_number
        self.failure = failure

    async def wait(self) -> TransactionReceipt:
        if self.failure is not None:
            raise self.failure
        return TransactionReceipt(tx_hash=self.tx_hash, block_number=self.block_number)


@dataclass
class _ProposalRecord:
    id: int
    title: str
    description: str
    creator: str
    created_at: int
    yes_votes: int = 0
    no_votes: int = 0
    active: bool = True
    voters: Set[str] = field(default_factory=set)

    def snapshot(self) -> Proposal:
        return Proposal(self.id, self.title, self.description, self.creator,
                        self.yes_votes, self.no_votes, self.active, self.created_at)


class InMemoryLedgerStub(LedgerAdapter):
    """Single-process ledger with the voting contract's rules"""

    def __init__(self, account: str = DEFAULT_ACCOUNT,
                 proof_check: ProofCheck = accept_all_proofs,
                 clock: Callable[[], float] = time.time):
        self.account = account
        self.proof_check = proof_check
        self.clock = clock

        self.proposals: Dict[int, _ProposalRecord] = {}
        self.commitments: Set[int] = set()
        self.spent_nullifiers: Set[int] = set()
        self.block_number = 0
        self.submitted: List[str] = []
        self._reject_next = False

    # ------------------------------------------------------------------
    # Test hooks
    # ------------------------------------------------------------------

    def reject_next_signature(self):
        """Make the next write fail as if the wallet user declined it"""
        self._reject_next = True

    def add_proposal(self, title: str, description: str = "", creator: Optional[str] = None,
                     active: bool = True, proposal_id: Optional[int] = None) -> Proposal:
        proposal_id = len(self.proposals) if proposal_id is None else proposal_id
        record = _ProposalRecord(proposal_id, title, description, creator or self.account,
                                 int(self.clock()), active=active)
        self.proposals[proposal_id] = record
        return record.snapshot()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _submit(self, method: str, failure: Optional[LedgerFailure] = None) -> StubTransaction:
        if self._reject_next:
            self._reject_next = False
            raise LedgerFailure(reason="user rejected transaction", code=USER_REJECTED_CODE)

        self.block_number += 1
        tx_hash = "0x" + hashlib.sha256(f"{method}:{self.block_number}".encode()).hexdigest()
        self.submitted.append(method)
        if failure is not None:
            logger.info(f"Stub ledger reverted {method}: {failure.reason}")
        return StubTransaction(tx_hash, self.block_number, failure)

    async def register(self, commitment: int) -> PendingTransaction:
        if commitment in self.commitments:
            return self._submit('register', contract_error(Outcome.COMMITMENT_ALREADY_REGISTERED))

        tx = self._submit('register')
        self.commitments.add(commitment)
        return tx

    async def vote(self, proposal_id, support, p_a, p_b, p_c, public_signals) -> PendingTransaction:
        record = self.proposals.get(proposal_id)
        failure = None

        if record is None:
            failure = LedgerFailure(reason="ProposalNotFound")
        elif not record.active:
            failure = contract_error(Outcome.PROPOSAL_CLOSED)
        elif len(public_signals) != 3 or public_signals[0] != proposal_id:
            failure = contract_error(Outcome.PROPOSAL_MISMATCH)
        elif public_signals[1] not in self.commitments:
            failure = contract_error(Outcome.COMMITMENT_NOT_REGISTERED)
        elif public_signals[2] in self.spent_nullifiers:
            failure = contract_error(Outcome.NULLIFIER_ALREADY_SPENT)
        elif not self.proof_check(p_a, p_b, p_c, public_signals):
            failure = contract_error(Outcome.INVALID_PROOF)

        if failure is not None:
            return self._submit('vote', failure)

        tx = self._submit('vote')
        self.spent_nullifiers.add(public_signals[2])
        if support:
            record.yes_votes += 1
        else:
            record.no_votes += 1
        record.voters.add(self.account.lower())
        return tx

    async def create_proposal(self, title: str, description: str) -> PendingTransaction:
        if not title.strip():
            return self._submit('createProposal', contract_error(Outcome.EMPTY_TITLE))

        tx = self._submit('createProposal')
        self.add_proposal(title, description)
        return tx

    async def close_proposal(self, proposal_id: int) -> PendingTransaction:
        record = self.proposals.get(proposal_id)
        failure = None

        if record is None:
            failure = LedgerFailure(reason="ProposalNotFound")
        elif record.creator.lower() != self.account.lower():
            failure = contract_error(Outcome.NOT_CREATOR)
        elif not record.active:
            failure = contract_error(Outcome.PROPOSAL_CLOSED)

        if failure is not None:
            return self._submit('closeProposal', failure)

        tx = self._submit('closeProposal')
        record.active = False
        return tx

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_all_proposals(self) -> List[Proposal]:
        return [self.proposals[pid].snapshot() for pid in sorted(self.proposals)]

    async def has_voted(self, proposal_id: int, account: str) -> bool:
        record = self.proposals.get(proposal_id)
        return record is not None and account.lower() in record.voters
