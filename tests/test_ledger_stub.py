import pytest

from ledger import ErrorTranslator, InMemoryLedgerStub, LedgerFailure, Outcome, Proposal

PROOF = ([1, 2], [[3, 4], [5, 6]], [7, 8])


async def outcome_of(pending):
    with pytest.raises(LedgerFailure) as excinfo:
        await pending.wait()
    return ErrorTranslator().translate(excinfo.value).kind


@pytest.fixture
def stub():
    ledger = InMemoryLedgerStub()
    ledger.add_proposal("Fund the library")
    return ledger


class TestRegistration:
    @pytest.mark.asyncio
    async def test_register(self, stub):
        receipt = await (await stub.register(1234)).wait()
        assert receipt.tx_hash.startswith("0x")
        assert 1234 in stub.commitments

    @pytest.mark.asyncio
    async def test_duplicate_commitment(self, stub):
        await (await stub.register(1234)).wait()
        assert await outcome_of(await stub.register(1234)) == Outcome.COMMITMENT_ALREADY_REGISTERED


class TestVoting:
    @pytest.mark.asyncio
    async def test_vote_counts_and_spends_nullifier(self, stub):
        stub.commitments.add(11)
        await (await stub.vote(0, True, *PROOF, [0, 11, 99])).wait()

        (proposal,) = await stub.get_all_proposals()
        assert (proposal.yes_votes, proposal.no_votes) == (1, 0)
        assert 99 in stub.spent_nullifiers

    @pytest.mark.asyncio
    async def test_spent_nullifier(self, stub):
        stub.commitments.add(11)
        await (await stub.vote(0, True, *PROOF, [0, 11, 99])).wait()
        assert await outcome_of(await stub.vote(0, False, *PROOF, [0, 11, 99])) == \
            Outcome.NULLIFIER_ALREADY_SPENT

    @pytest.mark.asyncio
    async def test_unregistered_commitment(self, stub):
        assert await outcome_of(await stub.vote(0, True, *PROOF, [0, 11, 99])) == \
            Outcome.COMMITMENT_NOT_REGISTERED

    @pytest.mark.asyncio
    async def test_proposal_mismatch(self, stub):
        stub.add_proposal("Second")
        stub.commitments.add(11)
        assert await outcome_of(await stub.vote(1, True, *PROOF, [0, 11, 99])) == \
            Outcome.PROPOSAL_MISMATCH

    @pytest.mark.asyncio
    async def test_closed_proposal(self, stub):
        stub.add_proposal("Old", active=False)
        stub.commitments.add(11)
        assert await outcome_of(await stub.vote(1, True, *PROOF, [1, 11, 99])) == \
            Outcome.PROPOSAL_CLOSED

    @pytest.mark.asyncio
    async def test_invalid_proof(self):
        stub = InMemoryLedgerStub(proof_check=lambda *args: False)
        stub.add_proposal("Fund the library")
        stub.commitments.add(11)
        assert await outcome_of(await stub.vote(0, True, *PROOF, [0, 11, 99])) == \
            Outcome.INVALID_PROOF
        assert not stub.spent_nullifiers

    @pytest.mark.asyncio
    async def test_unknown_proposal(self, stub):
        assert await outcome_of(await stub.vote(42, True, *PROOF, [42, 11, 99])) == Outcome.UNKNOWN


class TestProposals:
    @pytest.mark.asyncio
    async def test_create_and_close(self, stub):
        await (await stub.create_proposal("Extend opening hours", "Weekends too")).wait()
        await (await stub.close_proposal(1)).wait()

        proposals = await stub.get_all_proposals()
        assert [p.title for p in proposals] == ["Fund the library", "Extend opening hours"]
        assert not proposals[1].active

    @pytest.mark.asyncio
    async def test_empty_title(self, stub):
        assert await outcome_of(await stub.create_proposal("   ", "")) == Outcome.EMPTY_TITLE

    @pytest.mark.asyncio
    async def test_close_by_other_account(self, stub):
        stub.account = "0x0000000000000000000000000000000000000001"
        assert await outcome_of(await stub.close_proposal(0)) == Outcome.NOT_CREATOR

    @pytest.mark.asyncio
    async def test_close_twice(self, stub):
        await (await stub.close_proposal(0)).wait()
        assert await outcome_of(await stub.close_proposal(0)) == Outcome.PROPOSAL_CLOSED

    @pytest.mark.asyncio
    async def test_rejected_signature(self, stub):
        stub.reject_next_signature()
        with pytest.raises(LedgerFailure) as excinfo:
            await stub.create_proposal("Title", "")
        assert ErrorTranslator().translate(excinfo.value).kind == Outcome.USER_REJECTED
        # Only the next write is rejected
        await (await stub.create_proposal("Title", "")).wait()

    @pytest.mark.asyncio
    async def test_legacy_has_voted(self, stub):
        stub.commitments.add(11)
        assert not await stub.has_voted(0, stub.account)
        await (await stub.vote(0, True, *PROOF, [0, 11, 99])).wait()
        assert await stub.has_voted(0, stub.account.upper())


class TestProposalModel:
    def test_yes_percentage(self):
        proposal = Proposal(0, "t", "", "0xabc", 2, 1, True, 0)
        assert proposal.total_votes == 3
        assert proposal.yes_percentage == 67

    def test_yes_percentage_half_rounds_up(self):
        assert Proposal(0, "t", "", "0xabc", 1, 7, True, 0).yes_percentage == 13

    def test_no_votes(self):
        assert Proposal(0, "t", "", "0xabc", 0, 0, True, 0).yes_percentage == 0

    def test_from_raw_tuple_and_mapping(self):
        raw = (3, "Title", "Desc", "0xabc", 4, 5, True, 1700000000)
        mapping = {"id": 3, "title": "Title", "description": "Desc", "creator": "0xabc",
                   "yesVotes": 4, "noVotes": 5, "active": True, "createdAt": 1700000000}
        assert Proposal.from_raw(raw) == Proposal.from_raw(mapping)
        assert Proposal.from_raw(raw).total_votes == 9
