"""JSON-RPC ledger adapter for the deployed voting contract"""

import logging
from typing import Any, List, Optional

from web3 import AsyncHTTPProvider, AsyncWeb3
from web3.exceptions import ContractLogicError, TimeExhausted, Web3Exception

from .adapter import LedgerAdapter, PendingTransaction, Proposal, TransactionReceipt
from .errors import LedgerFailure

logger = logging.getLogger(__name__)

_PROPOSAL_TUPLE = {
    "type": "tuple[]",
    "name": "",
    "components": [
        {"name": "id", "type": "uint256"},
        {"name": "title", "type": "string"},
        {"name": "description", "type": "string"},
        {"name": "creator", "type": "address"},
        {"name": "yesVotes", "type": "uint256"},
        {"name": "noVotes", "type": "uint256"},
        {"name": "active", "type": "bool"},
        {"name": "createdAt", "type": "uint256"},
    ],
}


def _fn(name, inputs, outputs=(), mutability="nonpayable"):
    return {
        "type": "function",
        "name": name,
        "inputs": [{"name": n, "type": t} for n, t in inputs],
        "outputs": list(outputs),
        "stateMutability": mutability,
    }


VOTING_ABI = [
    _fn("register", [("commitment", "uint256")]),
    _fn("vote", [
        ("proposalId", "uint256"),
        ("support", "bool"),
        ("pA", "uint256[2]"),
        ("pB", "uint256[2][2]"),
        ("pC", "uint256[2]"),
        ("pubSignals", "uint256[3]"),
    ]),
    _fn("createProposal", [("title", "string"), ("description", "string")]),
    _fn("closeProposal", [("proposalId", "uint256")]),
    _fn("getAllProposals", [], [_PROPOSAL_TUPLE], "view"),
    _fn("hasVoted", [("proposalId", "uint256"), ("voter", "address")],
        [{"name": "", "type": "bool"}], "view"),
]


def failure_from_exception(exc: BaseException) -> LedgerFailure:
    """Normalize a web3 / provider exception into a LedgerFailure"""
    if isinstance(exc, LedgerFailure):
        return exc

    if isinstance(exc, ContractLogicError):
        return LedgerFailure(reason=getattr(exc, 'message', None) or str(exc),
                             data=getattr(exc, 'data', None))

    # Provider errors usually carry the JSON-RPC error object as the first arg
    if exc.args and isinstance(exc.args[0], dict):
        error = exc.args[0]
        data = error.get('data')
        if isinstance(data, dict):
            data = data.get('data')
        code = error.get('code')
        return LedgerFailure(reason=str(error.get('message') or exc),
                             data=data if isinstance(data, str) else None,
                             code=code if isinstance(code, int) else None)

    return LedgerFailure(reason=str(exc) or type(exc).__name__)


class Web3PendingTransaction(PendingTransaction):
    def __init__(self, w3: AsyncWeb3, tx_hash: bytes, timeout: int):
        self.w3 = w3
        self._raw_hash = tx_hash
        self.tx_hash = AsyncWeb3.to_hex(tx_hash)
        self.timeout = timeout

    async def wait(self) -> TransactionReceipt:
        try:
            receipt = await self.w3.eth.wait_for_transaction_receipt(
                self._raw_hash, timeout=self.timeout)
        except TimeExhausted as e:
            raise LedgerFailure(reason=f"Transaction {self.tx_hash} not mined "
                                       f"within {self.timeout}s") from e
        except (Web3Exception, ValueError) as e:
            raise failure_from_exception(e) from e

        if receipt.get('status', 1) == 0:
            raise LedgerFailure(reason=f"Transaction {self.tx_hash} reverted")

        return TransactionReceipt(tx_hash=self.tx_hash,
                                  block_number=receipt.get('blockNumber'),
                                  gas_used=receipt.get('gasUsed'))


class Web3LedgerAdapter(LedgerAdapter):
    """
    Talks to the voting contract through a node's JSON-RPC endpoint.
    Writes are sent with eth_sendTransaction from `account`, so the node
    (or a wallet behind it) must hold that key.
    """

    def __init__(self, rpc_url: str, contract_address: str,
                 account: Optional[str] = None, receipt_timeout: int = 120):
        self.w3 = AsyncWeb3(AsyncHTTPProvider(rpc_url))
        self.contract = self.w3.eth.contract(
            address=AsyncWeb3.to_checksum_address(contract_address), abi=VOTING_ABI)
        self.account = AsyncWeb3.to_checksum_address(account) if account else None
        self.receipt_timeout = receipt_timeout

    async def _transact(self, method: str, *args: Any) -> PendingTransaction:
        if not self.account:
            raise LedgerFailure(reason="No signing account configured")

        logger.debug(f"Sending {method} from {self.account}")
        try:
            tx_hash = await getattr(self.contract.functions, method)(*args).transact(
                {'from': self.account})
        except (Web3Exception, ValueError) as e:
            raise failure_from_exception(e) from e

        return Web3PendingTransaction(self.w3, tx_hash, self.receipt_timeout)

    async def register(self, commitment: int) -> PendingTransaction:
        return await self._transact('register', commitment)

    async def vote(self, proposal_id, support, p_a, p_b, p_c, public_signals) -> PendingTransaction:
        return await self._transact('vote', proposal_id, bool(support), list(p_a),
                                    [list(row) for row in p_b], list(p_c),
                                    list(public_signals))

    async def create_proposal(self, title: str, description: str) -> PendingTransaction:
        return await self._transact('createProposal', title, description)

    async def close_proposal(self, proposal_id: int) -> PendingTransaction:
        return await self._transact('closeProposal', proposal_id)

    async def get_all_proposals(self) -> List[Proposal]:
        try:
            raw = await self.contract.functions.getAllProposals().call()
        except (Web3Exception, ValueError) as e:
            raise failure_from_exception(e) from e
        return [Proposal.from_raw(item) for item in raw]

    async def has_voted(self, proposal_id: int, account: str) -> bool:
        try:
            return bool(await self.contract.functions.hasVoted(
                proposal_id, AsyncWeb3.to_checksum_address(account)).call())
        except (Web3Exception, ValueError) as e:
            raise failure_from_exception(e) from e
