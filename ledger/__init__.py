"""
Ledger access for the voting client: adapter interface, in-memory contract
stub, JSON-RPC adapter and verifier failure translation.
"""

from .adapter import LedgerAdapter, PendingTransaction, Proposal, TransactionReceipt
from .errors import (
    ErrorTranslator,
    LedgerFailure,
    Outcome,
    UserFacingOutcome,
    contract_error,
    error_selector,
)
from .stub import InMemoryLedgerStub

__all__ = [
    'LedgerAdapter',
    'PendingTransaction',
    'Proposal',
    'TransactionReceipt',
    'ErrorTranslator',
    'LedgerFailure',
    'Outcome',
    'UserFacingOutcome',
    'contract_error',
    'error_selector',
    'InMemoryLedgerStub',
]
