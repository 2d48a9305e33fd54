"""
Integration tests for the Adaptive Attempt Engine.

Quizzes are built directly from seeded questions so each test controls the
exact difficulty mix; the engine runs against a per-test SQLite database.
"""

import random
from uuid import uuid4

import pytest
from sqlalchemy import select, update

from src.adaptive import AdaptiveAttemptEngine
from src.core.errors import (
    AttemptAlreadyActiveError,
    AuthorizationError,
    NotFoundError,
    StateConflictError,
    ValidationError,
)
from src.db.database import get_async_session_factory
from src.db.models import Question, QuizAttempt, StudentSkill
from src.learning import PointsSkillAggregator

USER = "student-1"
WRONG = "definitely not the answer"


def engine_for(session, aggregator=None, seed=0) -> AdaptiveAttemptEngine:
    return AdaptiveAttemptEngine(session, skill_aggregator=aggregator, seed=seed)


def answer_for(quiz, question_id, correct=True):
    return quiz.find_snapshot(question_id).answer if correct else WRONG


async def answer_next(engine, quiz, attempt_id, correct=True):
    """Fetch the next question and answer it."""
    result = await engine.next_question(attempt_id, USER)
    assert not result.completed
    outcome = await engine.submit_answer(
        attempt_id, result.question.id, answer_for(quiz, result.question.id, correct), USER
    )
    return result, outcome


class TestStartAttempt:
    @pytest.mark.asyncio
    async def test_start_uses_quiz_config(self, session, make_quiz):
        quiz = await make_quiz(session, [3] * 5, target=4, start=2)

        started = await engine_for(session).start_attempt(USER, quiz.id)

        assert started.quiz_id == quiz.id
        assert started.target_correct_answers == 4
        assert started.starting_difficulty == 2
        assert started.current_difficulty == 2
        assert started.correct_count == 0

    @pytest.mark.asyncio
    async def test_second_active_attempt_conflicts(self, session, make_quiz):
        quiz = await make_quiz(session, [3] * 5)
        engine = engine_for(session)
        first = await engine.start_attempt(USER, quiz.id)

        with pytest.raises(AttemptAlreadyActiveError) as exc_info:
            await engine.start_attempt(USER, quiz.id)

        assert isinstance(exc_info.value, StateConflictError)
        assert exc_info.value.details["attempt_id"] == str(first.attempt_id)

    @pytest.mark.asyncio
    async def test_other_users_can_start_concurrently(self, session, make_quiz):
        quiz = await make_quiz(session, [3] * 5)
        engine = engine_for(session)
        await engine.start_attempt(USER, quiz.id)
        other = await engine.start_attempt("student-2", quiz.id)
        assert other.attempt_id

    @pytest.mark.asyncio
    async def test_new_attempt_allowed_after_completion(self, session, make_quiz):
        quiz = await make_quiz(session, [1], start=5)
        engine = engine_for(session)
        started = await engine.start_attempt(USER, quiz.id)
        result = await engine.next_question(started.attempt_id, USER)
        assert result.completed

        again = await engine.start_attempt(USER, quiz.id)
        assert again.attempt_id != started.attempt_id

    @pytest.mark.asyncio
    async def test_unavailable_quiz(self, session, make_quiz):
        quiz = await make_quiz(session, [3] * 5)
        with pytest.raises(AuthorizationError):
            await engine_for(session).start_attempt(USER, quiz.id, is_available=False)

    @pytest.mark.asyncio
    async def test_inactive_quiz_is_unavailable_by_default(self, session, make_quiz):
        quiz = await make_quiz(session, [3] * 5)
        quiz.is_active = False
        await session.flush()
        with pytest.raises(AuthorizationError):
            await engine_for(session).start_attempt(USER, quiz.id)

    @pytest.mark.asyncio
    async def test_non_adaptive_quiz_rejected(self, session, make_quiz):
        quiz = await make_quiz(session, [3] * 5)
        quiz.quiz_type = "static"
        await session.flush()
        with pytest.raises(ValidationError):
            await engine_for(session).start_attempt(USER, quiz.id)

    @pytest.mark.asyncio
    async def test_unknown_and_malformed_quiz_ids(self, session):
        engine = engine_for(session)
        with pytest.raises(NotFoundError):
            await engine.start_attempt(USER, uuid4())
        with pytest.raises(ValidationError):
            await engine.start_attempt(USER, "not-a-uuid")

    @pytest.mark.asyncio
    async def test_missing_user(self, session, make_quiz):
        quiz = await make_quiz(session, [3] * 5)
        with pytest.raises(ValidationError):
            await engine_for(session).start_attempt("", quiz.id)


class TestProgressionThroughEngine:
    @pytest.mark.asyncio
    async def test_immediate_up_then_back(self, session, make_quiz):
        quiz = await make_quiz(session, [2] * 3 + [3] * 3 + [4] * 3, progression="immediate", start=3)
        engine = engine_for(session)
        started = await engine.start_attempt(USER, quiz.id)

        served, outcome = await answer_next(engine, quiz, started.attempt_id, correct=True)
        assert served.question.difficulty == 3
        assert outcome.is_correct
        assert outcome.new_difficulty == 4

        served, outcome = await answer_next(engine, quiz, started.attempt_id, correct=False)
        assert served.question.difficulty == 4
        assert not outcome.is_correct
        assert outcome.new_difficulty == 3

    @pytest.mark.asyncio
    async def test_gradual_two_of_three_steps_up(self, session, make_quiz):
        quiz = await make_quiz(session, [3] * 3 + [4] * 3 + [5] * 3, progression="gradual", start=3)
        engine = engine_for(session)
        started = await engine.start_attempt(USER, quiz.id)

        _, first = await answer_next(engine, quiz, started.attempt_id, correct=True)
        assert first.new_difficulty == 3
        _, second = await answer_next(engine, quiz, started.attempt_id, correct=True)
        assert second.new_difficulty == 4

        served, third = await answer_next(engine, quiz, started.attempt_id, correct=False)
        assert served.progress.current_difficulty == 4
        assert third.new_difficulty == 5

    @pytest.mark.asyncio
    async def test_answer_records_keep_difficulty_at_time(self, session, make_quiz):
        quiz = await make_quiz(session, [3] * 3 + [4] * 3, progression="immediate", start=3)
        engine = engine_for(session)
        started = await engine.start_attempt(USER, quiz.id)

        await answer_next(engine, quiz, started.attempt_id, correct=True)
        await answer_next(engine, quiz, started.attempt_id, correct=True)

        report = await engine.get_results(started.attempt_id, USER)
        assert [s.difficulty_at_time for s in report.difficulty_progression] == [3, 4]
        assert [s.question_number for s in report.difficulty_progression] == [1, 2]


class TestCompletion:
    @pytest.mark.asyncio
    async def test_target_reached_invokes_aggregator_once(self, session, make_quiz, recording_aggregator):
        quiz = await make_quiz(session, [5] * 20, progression="immediate", target=10, start=5)
        engine = engine_for(session, recording_aggregator)
        started = await engine.start_attempt(USER, quiz.id)

        for _ in range(10):
            await answer_next(engine, quiz, started.attempt_id, correct=True)
        assert recording_aggregator.calls == []

        result = await engine.next_question(started.attempt_id, USER)
        assert result.completed is True
        assert result.summary.correct_count == 10
        assert result.summary.total_answered == 10
        assert result.summary.accuracy == 100
        assert result.summary.completion_reason == "target_reached"
        assert result.summary.message == "Quiz completed!"

        assert len(recording_aggregator.calls) == 1
        user_id, answers = recording_aggregator.calls[0]
        assert user_id == USER
        assert len(answers) == 10

        with pytest.raises(StateConflictError):
            await engine.next_question(started.attempt_id, USER)
        assert len(recording_aggregator.calls) == 1

    @pytest.mark.asyncio
    async def test_pool_exhausted_when_no_nearby_difficulty(self, session, make_quiz, recording_aggregator):
        quiz = await make_quiz(session, [1, 1], start=4)
        engine = engine_for(session, recording_aggregator)
        started = await engine.start_attempt(USER, quiz.id)

        result = await engine.next_question(started.attempt_id, USER)

        assert result.completed is True
        assert result.summary.completion_reason == "pool_exhausted"
        assert result.summary.message == "No more questions available. Quiz completed!"
        assert result.summary.accuracy == 0
        assert len(recording_aggregator.calls) == 1

    @pytest.mark.asyncio
    async def test_all_questions_answered_exhausts_pool(self, session, make_quiz):
        quiz = await make_quiz(session, [3, 3], target=10, start=3)
        engine = engine_for(session)
        started = await engine.start_attempt(USER, quiz.id)

        await answer_next(engine, quiz, started.attempt_id, correct=False)
        await answer_next(engine, quiz, started.attempt_id, correct=False)
        result = await engine.next_question(started.attempt_id, USER)

        assert result.completed
        assert result.summary.completion_reason == "pool_exhausted"
        assert result.summary.total_answered == 2

    @pytest.mark.asyncio
    async def test_failing_aggregator_does_not_undo_completion(self, session, make_quiz, failing_aggregator):
        quiz = await make_quiz(session, [3] * 3, target=1, start=3)
        engine = engine_for(session, failing_aggregator)
        started = await engine.start_attempt(USER, quiz.id)
        await answer_next(engine, quiz, started.attempt_id, correct=True)

        result = await engine.next_question(started.attempt_id, USER)
        await session.commit()

        assert result.completed
        assert failing_aggregator.calls == 1
        async with get_async_session_factory()() as fresh:
            attempt = await fresh.get(QuizAttempt, started.attempt_id)
            assert attempt.is_completed is True
            assert attempt.completion_reason == "target_reached"
            assert attempt.completed_at is not None

    @pytest.mark.asyncio
    async def test_points_aggregator_updates_skills(self, session, make_quiz):
        quiz = await make_quiz(session, [5] * 12, target=10, start=5, topic="Fractions")
        engine = engine_for(session, PointsSkillAggregator(session))
        started = await engine.start_attempt(USER, quiz.id)
        for _ in range(10):
            await answer_next(engine, quiz, started.attempt_id, correct=True)

        await engine.next_question(started.attempt_id, USER)
        await session.commit()

        skill = (
            await session.execute(select(StudentSkill).where(StudentSkill.student_id == USER))
        ).scalar_one()
        assert skill.skill_name == "Fractions"
        assert skill.points == 50.0
        assert skill.current_level == 2


class TestSubmitAnswer:
    @pytest.mark.asyncio
    async def test_duplicate_answer_rejected_without_change(self, session, make_quiz):
        quiz = await make_quiz(session, [3] * 3 + [4] * 3, progression="immediate", start=3)
        engine = engine_for(session)
        started = await engine.start_attempt(USER, quiz.id)
        served, outcome = await answer_next(engine, quiz, started.attempt_id, correct=True)
        assert outcome.new_difficulty == 4

        attempt = await session.get(QuizAttempt, started.attempt_id)
        before = (attempt.current_difficulty, len(attempt.answers))

        with pytest.raises(StateConflictError):
            await engine.submit_answer(started.attempt_id, served.question.id, WRONG, USER)

        attempt = await session.get(QuizAttempt, started.attempt_id)
        assert (attempt.current_difficulty, len(attempt.answers)) == before == (4, 1)
        report = await engine.get_results(started.attempt_id, USER)
        assert report.correct_count == 1
        assert report.total_answered == 1

    @pytest.mark.asyncio
    async def test_question_not_in_quiz(self, session, make_quiz):
        quiz = await make_quiz(session, [3] * 5)
        engine = engine_for(session)
        started = await engine.start_attempt(USER, quiz.id)

        with pytest.raises(StateConflictError):
            await engine.submit_answer(started.attempt_id, str(uuid4()), "A1", USER)

    @pytest.mark.asyncio
    async def test_missing_fields(self, session, make_quiz):
        quiz = await make_quiz(session, [3] * 5)
        engine = engine_for(session)
        started = await engine.start_attempt(USER, quiz.id)
        question_id = quiz.snapshots[0].question_id

        with pytest.raises(ValidationError):
            await engine.submit_answer(started.attempt_id, "", "A1", USER)
        with pytest.raises(ValidationError):
            await engine.submit_answer(started.attempt_id, question_id, None, USER)

    @pytest.mark.asyncio
    async def test_submit_after_completion(self, session, make_quiz):
        quiz = await make_quiz(session, [3] * 3, target=1, start=3)
        engine = engine_for(session)
        started = await engine.start_attempt(USER, quiz.id)
        await answer_next(engine, quiz, started.attempt_id, correct=True)
        await engine.next_question(started.attempt_id, USER)

        attempt = await session.get(QuizAttempt, started.attempt_id)
        remaining = next(s.question_id for s in quiz.snapshots if s.question_id not in attempt.answered_question_ids)
        with pytest.raises(StateConflictError):
            await engine.submit_answer(started.attempt_id, remaining, WRONG, USER)

    @pytest.mark.asyncio
    async def test_grading_uses_snapshot_after_source_edit(self, session, make_quiz):
        quiz = await make_quiz(session, [3])
        snap = quiz.snapshots[0]
        await session.execute(
            update(Question).where(Question.text == snap.text).values(answer="changed", is_active=False)
        )
        await session.commit()

        engine = engine_for(session)
        started = await engine.start_attempt(USER, quiz.id)
        outcome = await engine.submit_answer(started.attempt_id, snap.question_id, f"  {snap.answer.lower()} ", USER)

        assert outcome.is_correct
        assert outcome.correct_answer == snap.answer

    @pytest.mark.asyncio
    async def test_other_users_attempt_is_not_found(self, session, make_quiz):
        quiz = await make_quiz(session, [3] * 3)
        engine = engine_for(session)
        started = await engine.start_attempt(USER, quiz.id)

        with pytest.raises(NotFoundError):
            await engine.next_question(started.attempt_id, "intruder")
        with pytest.raises(NotFoundError):
            await engine.submit_answer(started.attempt_id, quiz.snapshots[0].question_id, "A1", "intruder")
        with pytest.raises(NotFoundError):
            await engine.get_results(started.attempt_id, "intruder")


class TestNextQuestion:
    @pytest.mark.asyncio
    async def test_repeated_calls_do_not_change_state(self, session, make_quiz):
        quiz = await make_quiz(session, [3] * 5)
        engine = engine_for(session)
        started = await engine.start_attempt(USER, quiz.id)

        first = await engine.next_question(started.attempt_id, USER)
        second = await engine.next_question(started.attempt_id, USER)

        assert first.progress == second.progress
        assert first.question.difficulty == second.question.difficulty == 3
        attempt = await session.get(QuizAttempt, started.attempt_id)
        assert attempt.total_answered == 0
        assert attempt.is_completed is False

    @pytest.mark.asyncio
    async def test_served_question_hides_answer(self, session, make_quiz):
        quiz = await make_quiz(session, [3])
        engine = engine_for(session)
        started = await engine.start_attempt(USER, quiz.id)

        result = await engine.next_question(started.attempt_id, USER)
        assert not hasattr(result.question, "answer")
        assert result.question.choices == list(quiz.snapshots[0].choices)

    @pytest.mark.asyncio
    async def test_falls_back_to_harder_then_easier(self, session, make_quiz):
        engine = engine_for(session)

        harder = await make_quiz(session, [2, 4], start=3)
        started = await engine.start_attempt(USER, harder.id)
        result = await engine.next_question(started.attempt_id, USER)
        assert result.question.difficulty == 4

        easier = await make_quiz(session, [2, 5], start=3)
        started = await engine.start_attempt(USER, easier.id)
        result = await engine.next_question(started.attempt_id, USER)
        assert result.question.difficulty == 2

    @pytest.mark.asyncio
    async def test_seeded_pick_is_reproducible(self, session, make_quiz):
        quiz = await make_quiz(session, [3] * 6, start=3)
        served = []
        for user in ("student-a", "student-b"):
            engine = engine_for(session, seed=3)
            started = await engine.start_attempt(user, quiz.id)
            result = await engine.next_question(started.attempt_id, user)
            served.append(result.question.id)

        assert served[0] == served[1]
        assert served[0] in {s.question_id for s in quiz.snapshots}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("progression", ["immediate", "gradual", "ml-based"])
    async def test_random_walk_keeps_invariants(self, session, make_quiz, progression):
        quiz = await make_quiz(session, [1, 2, 3, 4, 5] * 4, progression=progression, target=8, start=3)
        engine = engine_for(session, seed=17)
        started = await engine.start_attempt(USER, quiz.id)
        coin = random.Random(5)
        served_ids = []

        for _ in range(25):
            result = await engine.next_question(started.attempt_id, USER)
            if result.completed:
                break
            assert result.question.id not in served_ids
            served_ids.append(result.question.id)
            outcome = await engine.submit_answer(
                started.attempt_id,
                result.question.id,
                answer_for(quiz, result.question.id, coin.random() < 0.6),
                USER,
            )
            assert 1 <= outcome.new_difficulty <= 5
            assert outcome.correct_count <= outcome.total_answered
            assert outcome.correct_count <= 8
        else:
            pytest.fail("attempt never completed")

        report = await engine.get_results(started.attempt_id, USER)
        assert report.is_completed
        assert report.total_answered == len(served_ids) == len(report.answers)
        assert report.correct_count == sum(1 for a in report.answers if a.is_correct)


class TestReadOnlyViews:
    @pytest.mark.asyncio
    async def test_results_are_stable(self, session, make_quiz):
        quiz = await make_quiz(session, [3] * 4 + [4] * 4)
        engine = engine_for(session)
        started = await engine.start_attempt(USER, quiz.id)
        await answer_next(engine, quiz, started.attempt_id, correct=True)
        await answer_next(engine, quiz, started.attempt_id, correct=False)
        await answer_next(engine, quiz, started.attempt_id, correct=True)

        first = await engine.get_results(started.attempt_id, USER)
        second = await engine.get_results(started.attempt_id, USER)

        assert first == second
        assert first.correct_count == 2
        assert first.total_answered == 3
        assert first.accuracy == 67
        assert first.is_completed is False
        assert first.completion_reason is None

    @pytest.mark.asyncio
    async def test_list_attempts_newest_first_with_limit(self, session, make_quiz):
        engine = engine_for(session)
        started = []
        for _ in range(3):
            quiz = await make_quiz(session, [3] * 2)
            started.append(await engine.start_attempt(USER, quiz.id))
        other_quiz = await make_quiz(session, [3])
        await engine.start_attempt("student-2", other_quiz.id)

        history = await engine.list_attempts(USER)
        assert [h.attempt_id for h in history] == [s.attempt_id for s in reversed(started)]

        limited = await engine.list_attempts(USER, limit=2)
        assert [h.attempt_id for h in limited] == [started[2].attempt_id, started[1].attempt_id]
