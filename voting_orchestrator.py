"""
Anonymous Voting Orchestrator
=============================
Sequences credential registration and anonymous voting against an external
ledger:

    register:  Idle -> CredentialGenerated -> CredentialExported -> Registering -> Registered
    vote:      Idle -> CredentialLoaded -> ChoiceSelected -> Proving -> Proved -> Submitting -> Voted

A freshly generated credential can only reach the ledger after the voter has
produced its export and confirmed it. Any failure records the translated
outcome and puts the flow back into the state it can be retried from.

At most one proof or ledger write runs per session. The work runs as its own
task; a caller that stops waiting does not stop it, and the guard stays held
until it finishes.
"""

import asyncio
import contextlib
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Set, Union

from config import SystemConfig
from ledger import ErrorTranslator, LedgerAdapter, Outcome, Proposal, TransactionReceipt, UserFacingOutcome
from ledger.errors import MESSAGES
from utils import PerformanceMonitor, create_performance_report, setup_logging, short_hex
from zk import Credential, CredentialExport, CredentialManager, ProofGenerator, VoteProof

logger = logging.getLogger(__name__)


# ============================================================================
# STATES AND ERRORS
# ============================================================================


class RegistrationState(Enum):
    IDLE = "Idle"
    CREDENTIAL_GENERATED = "CredentialGenerated"
    CREDENTIAL_EXPORTED = "CredentialExported"
    REGISTERING = "Registering"
    REGISTERED = "Registered"


class VotingState(Enum):
    IDLE = "Idle"
    CREDENTIAL_LOADED = "CredentialLoaded"
    CHOICE_SELECTED = "ChoiceSelected"
    PROVING = "Proving"
    PROVED = "Proved"
    SUBMITTING = "Submitting"
    VOTED = "Voted"


class VotingError(Exception):
    """Base exception for orchestrator errors"""
    pass


class InvalidTransition(VotingError):
    """Operation not allowed from the current state"""
    pass


class OperationInProgress(VotingError):
    """Another proof or ledger write is still running for this session"""
    pass


class SessionNotStarted(VotingError):
    pass


class VoteNotAllowed(VotingError):
    """Local pre-check rejected the vote choice"""

    def __init__(self, outcome: UserFacingOutcome):
        super().__init__(outcome.message)
        self.outcome = outcome


class LedgerOperationFailed(VotingError):
    """A ledger call failed; `outcome` is the translated reason"""

    def __init__(self, outcome: UserFacingOutcome):
        super().__init__(outcome.message)
        self.outcome = outcome


class RegistrationFailed(LedgerOperationFailed):
    pass


class VoteSubmissionFailed(LedgerOperationFailed):
    pass


class ProposalOperationFailed(LedgerOperationFailed):
    pass


@dataclass
class VotingSession:
    """Process-local state of one connected user"""
    account: Optional[str]
    started_at: float = field(default_factory=time.time)
    proposals: List[Proposal] = field(default_factory=list)
    spent_nullifier_hashes: Set[int] = field(default_factory=set)

    def find_proposal(self, proposal_id: int) -> Optional[Proposal]:
        for proposal in self.proposals:
            if proposal.id == proposal_id:
                return proposal
        return None


def _local_outcome(kind: Outcome) -> UserFacingOutcome:
    return UserFacingOutcome(kind, MESSAGES[kind])


# ============================================================================
# ORCHESTRATOR
# ============================================================================


class VotingOrchestrator:
    """
    Single-user, single-session driver for registration and voting.

    All chain I/O goes through the ledger adapter; all proof work goes
    through the proof generator. Both are awaited inside the single-flight
    slot, never concurrently.
    """

    def __init__(self, ledger: LedgerAdapter, prover: ProofGenerator,
                 credential_manager: Optional[CredentialManager] = None,
                 translator: Optional[ErrorTranslator] = None,
                 config: Optional[SystemConfig] = None,
                 monitor: Optional[PerformanceMonitor] = None):
        self.ledger = ledger
        self.prover = prover
        self.credential_manager = credential_manager or CredentialManager()
        self.translator = translator or ErrorTranslator()
        self.config = config or SystemConfig()

        if monitor is None and self.config.enable_monitoring:
            monitor = PerformanceMonitor()
        self.monitor = monitor

        self.session: Optional[VotingSession] = None
        self._inflight: Optional[asyncio.Task] = None
        self._reset_flows()

    def _reset_flows(self):
        self.registration_state = RegistrationState.IDLE
        self.pending_credential: Optional[Credential] = None
        self.registered_credential: Optional[Credential] = None
        self._export_produced = False

        self.voting_state = VotingState.IDLE
        self.voting_credential: Optional[Credential] = None
        self.selected_proposal: Optional[int] = None
        self.selected_support: Optional[bool] = None
        self.proof: Optional[VoteProof] = None

        self.last_outcome: Optional[UserFacingOutcome] = None
        self.last_error: Optional[Exception] = None

    # ------------------------------------------------------------------
    # Guards
    # ------------------------------------------------------------------

    @property
    def busy(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    def _ensure_not_busy(self, operation: str):
        if self.busy:
            raise OperationInProgress(
                f"Cannot {operation}: {self._inflight.get_name()} is still running")

    def _require_session(self) -> VotingSession:
        if self.session is None:
            raise SessionNotStarted("Start a session first")
        return self.session

    def _require_registration(self, operation: str, *allowed: RegistrationState):
        if self.registration_state not in allowed:
            raise InvalidTransition(
                f"Cannot {operation} in registration state {self.registration_state.value}")

    def _require_voting(self, operation: str, *allowed: VotingState):
        if self.voting_state not in allowed:
            raise InvalidTransition(
                f"Cannot {operation} in voting state {self.voting_state.value}")

    async def _run_exclusive(self, name: str, work: Callable[[], Awaitable[Any]]) -> Any:
        """Run `work` in the single-flight slot; cancelling the caller leaves it running"""
        self._ensure_not_busy(name)

        task = asyncio.ensure_future(work())
        task.set_name(name)
        task.add_done_callback(self._release)
        self._inflight = task
        return await asyncio.shield(task)

    def _release(self, task: asyncio.Task):
        if self._inflight is task:
            self._inflight = None
        # Mark the result retrieved when nobody is waiting on it any more
        if not task.cancelled() and task.exception() is not None:
            logger.debug(f"{task.get_name()} finished with {type(task.exception()).__name__}")

    async def wait_idle(self):
        """Wait for the in-flight operation, if any, without taking its result"""
        task = self._inflight
        if task is not None:
            await asyncio.wait({task})

    def _measure(self, operation: str, **data):
        if self.monitor is None:
            return contextlib.nullcontext()
        return self.monitor.start_operation(operation, **data)

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    def start_session(self, account: Optional[str] = None) -> VotingSession:
        if self.session is not None:
            raise InvalidTransition("A session is already open")

        self.session = VotingSession(account=account or self.ledger.account)
        logger.info(f"Session started for {self.session.account or 'read-only user'}")
        return self.session

    def close_session(self):
        """Discard credentials, proofs and cached ledger data; stop prover workers"""
        self._ensure_not_busy("close session")
        if self.session is None:
            return

        account = self.session.account
        self.session = None
        self._reset_flows()
        self.prover.shutdown()

        if self.monitor is not None and self.monitor.metrics:
            logger.debug("\n" + create_performance_report(self.monitor))
        logger.info(f"Session closed for {account or 'read-only user'}")

    # ------------------------------------------------------------------
    # Registration flow
    # ------------------------------------------------------------------

    def generate_credential(self) -> Credential:
        self._ensure_not_busy("generate a credential")
        self._require_registration("generate a credential", RegistrationState.IDLE,
                                   RegistrationState.CREDENTIAL_GENERATED,
                                   RegistrationState.CREDENTIAL_EXPORTED)

        self.pending_credential = self.credential_manager.generate()
        self._export_produced = False
        self.registration_state = RegistrationState.CREDENTIAL_GENERATED
        return self.pending_credential

    def export_credential(self, path: Optional[Union[str, Path]] = None,
                          save: bool = False) -> CredentialExport:
        """
        Produce the credential backup. It is written to `path` when given, or
        to the configured export path when `save` is set.
        """
        self._ensure_not_busy("export the credential")
        self._require_registration("export the credential",
                                   RegistrationState.CREDENTIAL_GENERATED,
                                   RegistrationState.CREDENTIAL_EXPORTED)

        export = self.credential_manager.export(self.pending_credential)
        if path is None and save:
            path = self.config.credential_config.export_path
        if path is not None:
            self.credential_manager.save(self.pending_credential, path)
        self._export_produced = True
        return export

    def confirm_export(self):
        """Voter acknowledges holding the backup; unlocks registration"""
        self._ensure_not_busy("confirm the export")
        self._require_registration("confirm the export",
                                   RegistrationState.CREDENTIAL_GENERATED,
                                   RegistrationState.CREDENTIAL_EXPORTED)
        if not self._export_produced:
            raise InvalidTransition("Export the credential before confirming it was saved")

        self.registration_state = RegistrationState.CREDENTIAL_EXPORTED

    async def register(self) -> TransactionReceipt:
        self._ensure_not_busy("register")
        self._require_session()
        self._require_registration("register", RegistrationState.CREDENTIAL_EXPORTED)
        return await self._run_exclusive("register", self._register)

    async def _register(self) -> TransactionReceipt:
        credential = self.pending_credential
        self.registration_state = RegistrationState.REGISTERING
        logger.info(f"Registering commitment {short_hex(credential.commitment)}")

        try:
            with self._measure("register"):
                tx = await self.ledger.register(credential.commitment)
                receipt = await tx.wait()
        except Exception as e:
            outcome = self._record_failure(e)
            self.registration_state = RegistrationState.CREDENTIAL_EXPORTED
            logger.warning(f"Registration failed: {outcome.kind.value}")
            raise RegistrationFailed(outcome) from e

        self.registered_credential = credential
        self.registration_state = RegistrationState.REGISTERED
        self.last_outcome = None
        logger.info(f"Commitment {short_hex(credential.commitment)} registered in {receipt.tx_hash}")
        return receipt

    # ------------------------------------------------------------------
    # Voting flow
    # ------------------------------------------------------------------

    def _loadable(self, operation: str):
        self._ensure_not_busy(operation)
        self._require_voting(operation, VotingState.IDLE, VotingState.CREDENTIAL_LOADED,
                             VotingState.CHOICE_SELECTED, VotingState.PROVED,
                             VotingState.VOTED)

    def _set_voting_credential(self, credential: Credential) -> Credential:
        self.voting_credential = credential
        self.selected_proposal = None
        self.selected_support = None
        self.proof = None
        self.voting_state = VotingState.CREDENTIAL_LOADED
        logger.info(f"Loaded credential {short_hex(credential.commitment)} for voting")
        return credential

    def load_credential(self, export: Mapping[str, Any]) -> Credential:
        """Import an export; a malformed one leaves the current state untouched"""
        self._loadable("load a credential")
        return self._set_voting_credential(self.credential_manager.import_credential(export))

    def load_credential_file(self, path: Union[str, Path]) -> Credential:
        self._loadable("load a credential")
        return self._set_voting_credential(self.credential_manager.load(path))

    def load_credential_from_secrets(self, secret: Any, nullifier: Any) -> Credential:
        self._loadable("load a credential")
        return self._set_voting_credential(self.credential_manager.from_secrets(secret, nullifier))

    def use_registered_credential(self) -> Credential:
        self._loadable("load a credential")
        if self.registration_state != RegistrationState.REGISTERED:
            raise InvalidTransition("No registered credential in this session")
        return self._set_voting_credential(self.registered_credential)

    def choose_vote(self, proposal_id: int, support: bool):
        """
        Select the proposal and direction. Rejects proposals known to be
        closed and proposals this session already spent a nullifier on;
        the ledger remains the authority on both.
        """
        self._ensure_not_busy("choose a vote")
        session = self._require_session()
        self._require_voting("choose a vote", VotingState.CREDENTIAL_LOADED,
                             VotingState.CHOICE_SELECTED, VotingState.PROVED,
                             VotingState.VOTED)

        if isinstance(proposal_id, bool) or int(proposal_id) < 0:
            raise ValueError(f"Invalid proposal id: {proposal_id!r}")
        proposal_id = int(proposal_id)

        proposal = session.find_proposal(proposal_id)
        if proposal is not None and not proposal.active:
            raise VoteNotAllowed(_local_outcome(Outcome.PROPOSAL_CLOSED))

        nullifier_hash = self.credential_manager.nullifier_hash(self.voting_credential, proposal_id)
        if nullifier_hash in session.spent_nullifier_hashes:
            raise VoteNotAllowed(_local_outcome(Outcome.NULLIFIER_ALREADY_SPENT))

        self.selected_proposal = proposal_id
        self.selected_support = bool(support)
        self.proof = None
        self.voting_state = VotingState.CHOICE_SELECTED

    async def prove(self) -> VoteProof:
        self._ensure_not_busy("generate a proof")
        self._require_voting("generate a proof", VotingState.CHOICE_SELECTED)
        return await self._run_exclusive("prove", self._prove)

    async def _prove(self) -> VoteProof:
        self.voting_state = VotingState.PROVING
        try:
            with self._measure("generate_proof", proposal_id=self.selected_proposal):
                proof = await self.prover.prove(self.voting_credential,
                                                self.selected_support,
                                                self.selected_proposal)
        except Exception as e:
            self.last_error = e
            self.voting_state = VotingState.CHOICE_SELECTED
            logger.error(f"Proof generation failed: {e}")
            raise

        self.proof = proof
        self.voting_state = VotingState.PROVED
        return proof

    async def submit(self) -> TransactionReceipt:
        self._ensure_not_busy("submit the vote")
        self._require_session()
        self._require_voting("submit the vote", VotingState.PROVED)
        return await self._run_exclusive("submit", self._submit)

    async def _submit(self) -> TransactionReceipt:
        session = self._require_session()
        proof = self.proof
        p_a, p_b, p_c, public_signals = proof.to_calldata()
        self.voting_state = VotingState.SUBMITTING
        logger.info(f"Submitting vote on proposal {proof.proposal_id} "
                    f"with nullifier hash {short_hex(proof.nullifier_hash)}")

        try:
            with self._measure("submit_vote", proposal_id=proof.proposal_id):
                tx = await self.ledger.vote(proof.proposal_id, self.selected_support,
                                            p_a, p_b, p_c, public_signals)
                receipt = await tx.wait()
        except Exception as e:
            outcome = self._record_failure(e)
            if outcome.kind == Outcome.NULLIFIER_ALREADY_SPENT:
                session.spent_nullifier_hashes.add(proof.nullifier_hash)
            self.voting_state = VotingState.PROVED
            logger.warning(f"Vote submission failed: {outcome.kind.value}")
            raise VoteSubmissionFailed(outcome) from e

        session.spent_nullifier_hashes.add(proof.nullifier_hash)
        self.voting_state = VotingState.VOTED
        self.last_outcome = None
        logger.info(f"Vote on proposal {proof.proposal_id} recorded in {receipt.tx_hash}")
        return receipt

    async def cast_vote(self, proposal_id: int, support: bool) -> TransactionReceipt:
        """choose_vote, prove and submit as one guarded operation"""
        self._ensure_not_busy("cast a vote")
        self._require_session()
        self.choose_vote(proposal_id, support)

        async def cast():
            await self._prove()
            return await self._submit()

        return await self._run_exclusive("cast_vote", cast)

    # ------------------------------------------------------------------
    # Proposals
    # ------------------------------------------------------------------

    async def refresh_proposals(self) -> List[Proposal]:
        """Reload proposals from the ledger, newest first"""
        session = self._require_session()
        try:
            proposals = await self.ledger.get_all_proposals()
        except Exception as e:
            outcome = self._record_failure(e)
            raise ProposalOperationFailed(outcome) from e

        session.proposals = list(reversed(proposals))
        logger.debug(f"Loaded {len(proposals)} proposals")
        return session.proposals

    async def create_proposal(self, title: str, description: str = "") -> TransactionReceipt:
        self._ensure_not_busy("create a proposal")
        self._require_session()

        title = title.strip()
        description = description.strip()
        if not title:
            outcome = _local_outcome(Outcome.EMPTY_TITLE)
            self.last_outcome = outcome
            raise ProposalOperationFailed(outcome)

        async def create():
            tx = await self.ledger.create_proposal(title, description)
            return await tx.wait()

        return await self._run_exclusive("create_proposal",
                                         lambda: self._ledger_write("create_proposal", create))

    async def close_proposal(self, proposal_id: int) -> TransactionReceipt:
        self._ensure_not_busy("close a proposal")
        self._require_session()

        async def close():
            tx = await self.ledger.close_proposal(proposal_id)
            return await tx.wait()

        return await self._run_exclusive("close_proposal",
                                         lambda: self._ledger_write("close_proposal", close))

    async def _ledger_write(self, operation: str,
                            call: Callable[[], Awaitable[TransactionReceipt]]) -> TransactionReceipt:
        try:
            with self._measure(operation):
                receipt = await call()
        except Exception as e:
            outcome = self._record_failure(e)
            logger.warning(f"{operation} failed: {outcome.kind.value}")
            raise ProposalOperationFailed(outcome) from e

        self.last_outcome = None
        # The write is mined; a failed reload must not report it as failed
        try:
            await self.refresh_proposals()
        except ProposalOperationFailed as e:
            logger.warning(f"{operation} succeeded but reloading proposals failed: "
                           f"{e.outcome.kind.value}")
        return receipt

    async def has_voted_hint(self, proposal_id: int) -> bool:
        """
        Legacy per-account check from the non-anonymous contract. Anonymous
        votes are not tied to an account, so this is display-only and must
        never gate voting.
        """
        session = self._require_session()
        if not session.account:
            return False
        try:
            return bool(await self.ledger.has_voted(proposal_id, session.account))
        except Exception as e:
            logger.warning(f"has_voted lookup failed for proposal {proposal_id}: {e}")
            return False

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _record_failure(self, error: Exception) -> UserFacingOutcome:
        outcome = self.translator.translate(error)
        self.last_outcome = outcome
        self.last_error = error
        return outcome

    def get_status(self) -> Dict[str, Any]:
        return {
            'session_open': self.session is not None,
            'account': self.session.account if self.session else None,
            'registration_state': self.registration_state.value,
            'voting_state': self.voting_state.value,
            'busy': self.busy,
            'last_outcome': self.last_outcome.kind.value if self.last_outcome else None,
            'performance': self.monitor.get_summary() if self.monitor else None,
        }


def build_orchestrator(config: Optional[SystemConfig] = None) -> VotingOrchestrator:
    """Wire the snarkjs prover and the JSON-RPC ledger from configuration"""
    from ledger.web3_adapter import Web3LedgerAdapter
    from zk import CircuitArtifacts, SnarkjsBackend, configure_hasher

    config = config or SystemConfig()
    prover_config = config.prover_config
    ledger_config = config.ledger_config

    if not ledger_config.contract_address:
        raise ValueError("Contract address not configured (set VOTING_CONTRACT_ADDRESS)")

    setup_logging(config.log_level, log_dir=config.log_dir)

    configure_hasher(config.hasher_config.constants_file)

    artifacts = CircuitArtifacts(
        wasm_file=prover_config.wasm_file,
        zkey_file=prover_config.zkey_file,
        base_url=prover_config.artifacts_base_url,
        cache_dir=prover_config.cache_dir,
    )
    backend = SnarkjsBackend(artifacts, snarkjs_command=prover_config.snarkjs_command,
                             timeout=prover_config.proof_timeout)
    prover = ProofGenerator(backend, max_workers=prover_config.max_workers)

    ledger = Web3LedgerAdapter(ledger_config.rpc_url, ledger_config.contract_address,
                               account=ledger_config.account,
                               receipt_timeout=ledger_config.confirmation_timeout)

    return VotingOrchestrator(ledger, prover, config=config)
