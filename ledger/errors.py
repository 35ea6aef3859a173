"""
Verifier failure translation.

Failures from the voting contract arrive in two encodings that do not always
agree: ABI revert data whose first four bytes select a custom error, and
free-text reasons from wallets and RPC nodes. Translation runs two ordered
passes, selector first and string second, into a closed set of outcomes.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from eth_abi import decode
from web3 import Web3

logger = logging.getLogger(__name__)


class Outcome(Enum):
    """Closed outcome taxonomy shown to the voter"""
    NULLIFIER_ALREADY_SPENT = "NullifierAlreadySpent"
    COMMITMENT_NOT_REGISTERED = "CommitmentNotRegistered"
    COMMITMENT_ALREADY_REGISTERED = "CommitmentAlreadyRegistered"
    INVALID_PROOF = "InvalidProof"
    PROPOSAL_MISMATCH = "ProposalMismatch"
    PROPOSAL_CLOSED = "ProposalClosed"
    NOT_CREATOR = "NotCreator"
    EMPTY_TITLE = "EmptyTitle"
    USER_REJECTED = "UserRejected"
    UNKNOWN = "Unknown"


@dataclass(frozen=True)
class UserFacingOutcome:
    kind: Outcome
    message: str
    raw_reason: Optional[str] = None

    def __str__(self) -> str:
        return self.message


class LedgerFailure(Exception):
    """Structured failure of a ledger call: revert data and/or a reason string"""

    def __init__(self, reason: Optional[str] = None, data: Any = None,
                 code: Optional[int] = None):
        super().__init__(reason or "ledger call failed")
        self.reason = reason
        self.data = _to_bytes(data)
        self.code = code

    @property
    def selector(self) -> Optional[bytes]:
        if self.data is not None and len(self.data) >= 4:
            return self.data[:4]
        return None


# ============================================================================
# LOOKUP TABLES
# ============================================================================

# Custom errors the voting contract may revert with, per outcome
CONTRACT_ERRORS: Dict[Outcome, Tuple[str, ...]] = {
    Outcome.NULLIFIER_ALREADY_SPENT: ("NullifierAlreadySpent()", "NullifierAlreadyUsed()", "AlreadyVoted()"),
    Outcome.COMMITMENT_NOT_REGISTERED: ("CommitmentNotRegistered()", "NotRegistered()"),
    Outcome.COMMITMENT_ALREADY_REGISTERED: ("CommitmentAlreadyRegistered()", "AlreadyRegistered()"),
    Outcome.INVALID_PROOF: ("InvalidProof()",),
    Outcome.PROPOSAL_MISMATCH: ("ProposalMismatch()", "ProposalIdMismatch()"),
    Outcome.PROPOSAL_CLOSED: ("ProposalClosed_Err()", "ProposalClosed()", "ProposalNotActive()"),
    Outcome.NOT_CREATOR: ("NotCreator()",),
    Outcome.EMPTY_TITLE: ("EmptyTitle()",),
}

# Error(string), the selector of a plain require/revert message
ERROR_STRING_SELECTOR = bytes.fromhex("08c379a0")

# Ordered; more specific patterns first. Matched case-insensitively.
REASON_PATTERNS: List[Tuple[str, Outcome]] = [
    ("NullifierAlreadySpent", Outcome.NULLIFIER_ALREADY_SPENT),
    ("NullifierAlreadyUsed", Outcome.NULLIFIER_ALREADY_SPENT),
    ("AlreadyVoted", Outcome.NULLIFIER_ALREADY_SPENT),
    ("nullifier already", Outcome.NULLIFIER_ALREADY_SPENT),
    ("CommitmentAlreadyRegistered", Outcome.COMMITMENT_ALREADY_REGISTERED),
    ("AlreadyRegistered", Outcome.COMMITMENT_ALREADY_REGISTERED),
    ("CommitmentNotRegistered", Outcome.COMMITMENT_NOT_REGISTERED),
    ("NotRegistered", Outcome.COMMITMENT_NOT_REGISTERED),
    ("InvalidProof", Outcome.INVALID_PROOF),
    ("invalid proof", Outcome.INVALID_PROOF),
    ("ProposalIdMismatch", Outcome.PROPOSAL_MISMATCH),
    ("ProposalMismatch", Outcome.PROPOSAL_MISMATCH),
    ("ProposalClosed_Err", Outcome.PROPOSAL_CLOSED),
    ("ProposalClosed", Outcome.PROPOSAL_CLOSED),
    ("ProposalNotActive", Outcome.PROPOSAL_CLOSED),
    ("NotCreator", Outcome.NOT_CREATOR),
    ("EmptyTitle", Outcome.EMPTY_TITLE),
    ("user rejected", Outcome.USER_REJECTED),
    ("user denied", Outcome.USER_REJECTED),
    ("ACTION_REJECTED", Outcome.USER_REJECTED),
]

# EIP-1193 "User Rejected Request"
USER_REJECTED_CODE = 4001

MESSAGES: Dict[Outcome, str] = {
    Outcome.NULLIFIER_ALREADY_SPENT: "You have already voted on this proposal.",
    Outcome.COMMITMENT_NOT_REGISTERED: "This credential is not registered. Register before voting.",
    Outcome.COMMITMENT_ALREADY_REGISTERED: "This credential is already registered.",
    Outcome.INVALID_PROOF: "The vote proof was rejected by the verifier.",
    Outcome.PROPOSAL_MISMATCH: "The proof was generated for a different proposal.",
    Outcome.PROPOSAL_CLOSED: "This proposal is already closed.",
    Outcome.NOT_CREATOR: "Only the proposal creator can close it.",
    Outcome.EMPTY_TITLE: "Title cannot be empty.",
    Outcome.USER_REJECTED: "Transaction rejected by user.",
}


def error_selector(signature: str) -> bytes:
    return bytes(Web3.keccak(text=signature)[:4])


SELECTOR_TABLE: Dict[bytes, Outcome] = {
    error_selector(signature): outcome
    for outcome, signatures in CONTRACT_ERRORS.items()
    for signature in signatures
}


def contract_error(outcome: Outcome, reason: Optional[str] = None) -> LedgerFailure:
    """Build the failure the voting contract would revert with for an outcome"""
    signature = CONTRACT_ERRORS[outcome][0]
    return LedgerFailure(reason=reason or signature[:-2], data=error_selector(signature))


def _to_bytes(data: Any) -> Optional[bytes]:
    if data is None:
        return None
    if isinstance(data, (bytes, bytearray)):
        return bytes(data)
    if isinstance(data, str):
        text = data.strip()
        if text[:2].lower() == '0x':
            text = text[2:]
        try:
            return bytes.fromhex(text)
        except ValueError:
            return None
    return None


# ============================================================================
# TRANSLATOR
# ============================================================================


class ErrorTranslator:
    """Maps any ledger failure to exactly one UserFacingOutcome. Never raises."""

    def translate(self, failure: Any) -> UserFacingOutcome:
        try:
            data, reason, code = self._extract(failure)

            outcome, reason = self._by_selector(data, reason)
            if outcome is None:
                outcome = self._by_reason(reason, code)

            if outcome is None:
                raw = reason or "Unknown error"
                logger.debug(f"Unmapped ledger failure: {raw}")
                return UserFacingOutcome(Outcome.UNKNOWN, raw, raw)

            return UserFacingOutcome(outcome, MESSAGES[outcome], reason)

        except Exception as e:
            logger.warning(f"Could not interpret ledger failure: {e}")
            raw = self._safe_str(failure)
            return UserFacingOutcome(Outcome.UNKNOWN, raw, raw)

    def _extract(self, failure: Any) -> Tuple[Optional[bytes], Optional[str], Optional[int]]:
        if isinstance(failure, LedgerFailure):
            return failure.data, failure.reason, failure.code

        if isinstance(failure, (bytes, bytearray)):
            return bytes(failure), None, None

        if isinstance(failure, str):
            data = _to_bytes(failure) if failure.strip()[:2].lower() == '0x' else None
            return data, (None if data is not None else failure), None

        if isinstance(failure, dict):
            return self._extract_rpc_error(failure)

        if isinstance(failure, BaseException):
            if failure.args and isinstance(failure.args[0], dict):
                return self._extract_rpc_error(failure.args[0])
            data = getattr(failure, 'data', None)
            if isinstance(data, dict):
                data = data.get('data')
            reason = getattr(failure, 'reason', None) or getattr(failure, 'message', None) or str(failure)
            return _to_bytes(data), str(reason), getattr(failure, 'code', None)

        return None, (None if failure is None else str(failure)), None

    @staticmethod
    def _extract_rpc_error(error: Dict[str, Any]) -> Tuple[Optional[bytes], Optional[str], Optional[int]]:
        data = error.get('data')
        if isinstance(data, dict):
            data = data.get('data')
        reason = error.get('reason') or error.get('message')
        code = error.get('code')
        return _to_bytes(data), (str(reason) if reason is not None else None), \
            (code if isinstance(code, int) else None)

    @staticmethod
    def _by_selector(data: Optional[bytes], reason: Optional[str]) -> Tuple[Optional[Outcome], Optional[str]]:
        """First pass. Also unwraps Error(string) so its message reaches the second pass."""
        if data is None or len(data) < 4:
            return None, reason

        selector = data[:4]
        if selector in SELECTOR_TABLE:
            return SELECTOR_TABLE[selector], reason

        if selector == ERROR_STRING_SELECTOR:
            try:
                (message,) = decode(['string'], data[4:])
                return None, message
            except Exception as e:
                logger.debug(f"Undecodable Error(string) payload: {e}")

        return None, reason

    @staticmethod
    def _by_reason(reason: Optional[str], code: Optional[int]) -> Optional[Outcome]:
        """Second pass over the free-text reason"""
        if code == USER_REJECTED_CODE:
            return Outcome.USER_REJECTED
        if not reason:
            return None

        lowered = reason.lower()
        for pattern, outcome in REASON_PATTERNS:
            if pattern.lower() in lowered:
                return outcome
        return None

    @staticmethod
    def _safe_str(value: Any) -> str:
        try:
            return str(value) or "Unknown error"
        except Exception:
            return "Unknown error"
