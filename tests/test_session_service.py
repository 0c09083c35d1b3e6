import asyncio

import httpx
import pytest

from conftest import FakeBackend, FakeChain, FakeWallet, build_quiz
from quiz_session.errors import InvalidPhase, NotConnected, UnknownQuestion
from quiz_session.schemas.quiz_schema import Question
from quiz_session.schemas.session_schema import Direction, SessionPhase
from quiz_session.schemas.submission_schema import CommitOrder
from quiz_session.services.chain_client import JsonRpcClient, RpcChainClient, RpcWallet
from quiz_session.services.commit_service import CommitProtocol, keccak256
from quiz_session.services.session_service import QuizSession, to_answer_value

CONTRACT = "0xCd1a3b3FADffAcf76beA7B5C264515E91f996Cc1"


def make_session(quiz=None, wallet=None, chain=None, backend=None, tick_interval=1.0, order=CommitOrder.recorded):
    protocol = CommitProtocol(
        wallet or FakeWallet(), chain or FakeChain(), backend or FakeBackend(), CONTRACT, order=order,
    )
    return QuizSession(quiz or build_quiz(), protocol, tick_interval=tick_interval)


def test_start_sets_index_and_rejects_second_start():
    async def scenario():
        session = make_session()
        assert session.phase == SessionPhase.NOT_STARTED
        assert session.current_index is None
        session.start()
        assert session.phase == SessionPhase.IN_PROGRESS
        assert session.current_index == 0
        assert session.remaining_seconds == 60
        with pytest.raises(InvalidPhase):
            session.start()
        session.close()

    asyncio.run(scenario())


def test_navigation_is_clamped_at_both_ends():
    async def scenario():
        session = make_session()
        session.start()
        assert session.go_to(Direction.previous) is False
        assert session.current_index == 0

        assert session.go_to(Direction.next) is True
        assert session.go_to("next") is True
        assert session.current_index == 2
        assert session.go_to(Direction.next) is False
        assert session.current_index == 2

        assert session.go_to(Direction.previous) is True
        assert session.current_index == 1
        session.close()

    asyncio.run(scenario())


def test_actions_before_start_are_rejected():
    session = make_session()
    with pytest.raises(InvalidPhase):
        session.go_to(Direction.next)
    with pytest.raises(InvalidPhase):
        session.record_answer("1", "A")


def test_record_answer_progress_counts_distinct_questions():
    async def scenario():
        session = make_session()
        session.start()
        assert session.record_answer("1", "A") == 1
        assert session.record_answer("1", "C") == 1
        assert session.record_answer("2", "b") == 2
        assert session.answers.get("1").value.as_text() == "C"
        with pytest.raises(UnknownQuestion):
            session.record_answer("99", "A")
        session.close()

    asyncio.run(scenario())


def test_list_value_for_single_choice_keeps_first():
    question = build_quiz().questions[0]
    assert to_answer_value(question, ["b", "c"]).as_text() == "B"
    assert to_answer_value(question, 2).as_text() == "2"
    with pytest.raises(ValueError):
        to_answer_value(question, [])
    with pytest.raises(ValueError):
        to_answer_value(question, "")


def test_manual_submit_end_to_end():
    chain, backend = FakeChain(), FakeBackend()

    async def scenario():
        session = make_session(chain=chain, backend=backend)
        session.start()
        session.record_answer("1", "A")
        session.go_to(Direction.next)
        session.record_answer("2", "B")
        session.go_to(Direction.next)
        outcome = await session.submit()
        return session, outcome

    session, outcome = asyncio.run(scenario())

    expected = [{"question_id": 101, "answer": "A"}, {"question_id": 102, "answer": "B"}]
    canonical = '{"quiz_id":"quiz-1","answers":[{"question_id":101,"answer":"A"},{"question_id":102,"answer":"B"}]}'
    assert outcome.ok and not outcome.forced
    assert outcome.submission.answers_payload() == expected
    assert len(chain.calls) == 1
    assert chain.calls[0][0] == keccak256(canonical.encode("utf-8"))
    assert len(backend.calls) == 1
    assert backend.calls[0][1] == expected
    assert session.phase == SessionPhase.SUBMITTED
    assert session.outcome is outcome


def test_no_navigation_or_answers_after_submit():
    async def scenario():
        session = make_session()
        session.start()
        await session.submit()
        with pytest.raises(InvalidPhase):
            session.go_to(Direction.next)
        with pytest.raises(InvalidPhase):
            session.record_answer("1", "A")
        assert await session.submit() is None

    asyncio.run(scenario())


def test_manual_submit_without_wallet_keeps_session_in_progress():
    chain = FakeChain()

    async def scenario():
        session = make_session(wallet=FakeWallet(connected=False), chain=chain)
        session.start()
        with pytest.raises(NotConnected):
            await session.submit()
        assert session.phase == SessionPhase.IN_PROGRESS
        session.close()

    asyncio.run(scenario())
    assert chain.calls == []


def test_chain_failure_then_retry_resends_same_commitment():
    chain = FakeChain(fail=True)
    backend = FakeBackend()

    async def scenario():
        session = make_session(chain=chain, backend=backend)
        session.start()
        session.record_answer("1", "A")
        first = await session.submit()
        assert session.phase == SessionPhase.FAILED
        assert first.error_kind == "chain_rejected"
        with pytest.raises(InvalidPhase):
            session.record_answer("1", "B")

        chain.fail = False
        second = await session.submit()
        return session, second

    session, second = asyncio.run(scenario())
    assert second.ok
    assert session.phase == SessionPhase.SUBMITTED
    assert chain.calls[0][0] == chain.calls[1][0]
    assert len(backend.calls) == 1


def test_backend_failure_can_be_resent_without_new_chain_write():
    chain = FakeChain()
    backend = FakeBackend(fail=True)

    async def scenario():
        session = make_session(chain=chain, backend=backend)
        session.start()
        session.record_answer("2", "C")
        failed = await session.submit()
        assert failed.error_kind == "backend_rejected"
        assert failed.tx is not None
        assert failed.commitment is not None

        backend.fail = False
        resent = await session.retry_backend()
        return session, failed, resent

    session, failed, resent = asyncio.run(scenario())
    assert resent.ok
    assert resent.commitment == failed.commitment
    assert session.phase == SessionPhase.SUBMITTED
    assert len(chain.calls) == 1
    assert len(backend.calls) == 2
    assert backend.calls[0] == backend.calls[1]


def test_retry_backend_requires_backend_failure():
    async def scenario():
        session = make_session(chain=FakeChain(fail=True))
        session.start()
        await session.submit()
        with pytest.raises(InvalidPhase):
            await session.retry_backend()

    asyncio.run(scenario())


def test_timer_expiry_forces_exactly_one_submit():
    chain, backend = FakeChain(), FakeBackend()

    async def scenario():
        session = make_session(quiz=build_quiz(duration=1), chain=chain, backend=backend)
        session.start()
        session.record_answer("1", "B")
        # simulated double tick reaching zero
        session._timer.tick()
        session._timer.tick()
        session._on_timer_expired()
        await session.submission_task
        return session

    session = asyncio.run(scenario())
    assert len(chain.calls) == 1
    assert len(backend.calls) == 1
    assert session.phase == SessionPhase.SUBMITTED
    assert session.outcome.forced


def test_expiry_without_user_action_submits_empty_payload():
    chain, backend = FakeChain(), FakeBackend()

    async def scenario():
        session = make_session(quiz=build_quiz(duration=1), chain=chain, backend=backend, tick_interval=0.01)
        session.start()
        await asyncio.sleep(0.1)
        await session.submission_task
        remaining = session.remaining_seconds
        await asyncio.sleep(0.05)
        return session, remaining

    session, remaining = asyncio.run(scenario())
    assert session.phase == SessionPhase.SUBMITTED
    assert session.outcome.submission.answers == ()
    assert backend.calls[0][1] == []
    assert session.remaining_seconds == remaining == 0
    assert not session._timer.running


def test_forced_submit_without_wallet_fails():
    async def scenario():
        session = make_session(quiz=build_quiz(duration=1), wallet=FakeWallet(connected=False))
        session.start()
        session._timer.tick()
        await session.submission_task
        return session

    session = asyncio.run(scenario())
    assert session.phase == SessionPhase.FAILED
    assert session.outcome.error_kind == "not_connected"
    assert session.outcome.forced


def test_timer_signal_after_manual_submit_is_ignored():
    chain = FakeChain()

    async def scenario():
        session = make_session(quiz=build_quiz(duration=1), chain=chain)
        session.start()
        await session.submit()
        session._timer.tick()
        session._on_timer_expired()
        assert session.submission_task is None

    asyncio.run(scenario())
    assert len(chain.calls) == 1


def test_manual_and_forced_submit_race_commits_once():
    chain = FakeChain()

    async def scenario():
        session = make_session(quiz=build_quiz(duration=1), chain=chain)
        session.start()
        session._timer.tick()
        manual = await session.submit()
        forced = await session.submission_task
        return manual, forced

    manual, forced = asyncio.run(scenario())
    assert len(chain.calls) == 1
    assert (manual is None) != (forced is None)


def test_close_cancels_timer_and_ignores_late_completion():
    class SlowChain(FakeChain):
        async def submit_commitment(self, commitment, contract_address):
            await asyncio.sleep(0.05)
            return await super().submit_commitment(commitment, contract_address)

    async def scenario():
        session = make_session(chain=SlowChain())
        session.start()
        pending = asyncio.get_running_loop().create_task(session.submit())
        await asyncio.sleep(0)
        session.close()
        result = await pending
        return session, result

    session, result = asyncio.run(scenario())
    assert result is None
    assert session.phase == SessionPhase.SUBMITTING
    assert session.outcome is None
    with pytest.raises(InvalidPhase):
        session.go_to(Direction.next)


def test_question_order_commitment_mode():
    backend = FakeBackend()

    async def scenario():
        session = make_session(backend=backend, order=CommitOrder.question)
        session.start()
        session.record_answer("3", "C")
        session.record_answer("1", "A")
        return await session.submit()

    asyncio.run(scenario())
    assert [a["question_id"] for a in backend.calls[0][1]] == [101, 103]


def test_snapshot_reports_observers():
    async def scenario():
        session = make_session()
        session.start()
        session.record_answer("2", "d")
        state = session.snapshot()
        session.close()
        return state

    state = asyncio.run(scenario())
    assert state.phase == SessionPhase.IN_PROGRESS
    assert state.current_index == 0
    assert state.progress == 1
    assert state.question_count == 3
    assert state.answers == {"2": "D"}
    assert state.outcome is None


def html_chain():
    # a node behind a proxy that answers with an error page
    transport = httpx.MockTransport(lambda request: httpx.Response(200, text="<html>bad gateway</html>"))
    rpc = JsonRpcClient("http://node.test", client=httpx.AsyncClient(transport=transport))
    wallet = RpcWallet(rpc)
    wallet.address = "0xabc"
    return wallet, RpcChainClient(rpc, wallet, poll_interval=0)


def test_garbled_node_response_is_reported_as_chain_rejected():
    async def scenario():
        wallet, chain = html_chain()
        session = make_session(wallet=wallet, chain=chain)
        session.start()
        session.record_answer("1", "A")
        return session, await session.submit()

    session, outcome = asyncio.run(scenario())
    assert session.phase == SessionPhase.FAILED
    assert outcome is session.outcome
    assert outcome.error_kind == "chain_rejected"
    assert session.snapshot().outcome.error_kind == "chain_rejected"


def test_garbled_node_response_on_forced_submit():
    async def scenario():
        wallet, chain = html_chain()
        session = make_session(quiz=build_quiz(duration=1), wallet=wallet, chain=chain)
        session.start()
        session._timer.tick()
        await session.submission_task
        return session

    session = asyncio.run(scenario())
    assert session.phase == SessionPhase.FAILED
    assert session.outcome.forced
    assert session.outcome.error_kind == "chain_rejected"


class BrokenChain(FakeChain):
    async def submit_commitment(self, commitment, contract_address):
        raise RuntimeError("boom")


def test_unexpected_error_still_leaves_a_failed_outcome():
    async def scenario():
        session = make_session(chain=BrokenChain())
        session.start()
        with pytest.raises(RuntimeError):
            await session.submit()
        return session

    session = asyncio.run(scenario())
    assert session.phase == SessionPhase.FAILED
    assert session.outcome.ok is False
    assert session.outcome.error_kind == "internal_error"
    assert session.outcome.message == "boom"


def test_unexpected_error_in_forced_submit_is_retrieved(caplog):
    async def scenario():
        session = make_session(quiz=build_quiz(duration=1), chain=BrokenChain())
        session.start()
        session._timer.tick()
        task = session.submission_task
        await asyncio.wait([task])
        return session, task

    with caplog.at_level("ERROR", logger="quiz_session.services.session_service"):
        session, task = asyncio.run(scenario())
    assert isinstance(task.exception(), RuntimeError)
    assert session.outcome.forced
    assert session.outcome.error_kind == "internal_error"
    assert "forced submit crashed" in caplog.text
