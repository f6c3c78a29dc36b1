import threading

import pytest

from cma_mock_cbt.errors import (
    ExamPhaseError,
    InvalidExamConfigError,
    QuestionShortfallError,
    UnknownQuestionError,
)
from cma_mock_cbt.models.session_state import ExamSession, SessionStatus
from cma_mock_cbt.services import events as ev
from cma_mock_cbt.services.data_client import InMemoryDataClient
from cma_mock_cbt.services.exam_catalog import get_config
from cma_mock_cbt.services.exam_session import OFFLINE_WARNING, ExamRunner, prepare_exam
from cma_mock_cbt.services.question_source import QuestionSource
from cma_mock_cbt.services.session_store import SESSION_TABLE, SessionRecorder
from tests.fakes import FailingDataClient


@pytest.fixture
def recorder(data_client):
    rec = SessionRecorder(data_client)
    yield rec
    rec.shutdown()


def _answer(runner, n_correct):
    """앞에서부터 n_correct개는 정답, 나머지는 오답으로 답한다."""
    for i, q in enumerate(runner.mcqs):
        choice = q.correct_index if i < n_correct else (q.correct_index + 1) % 4
        runner.answer_mcq(q.id, choice)


def _started(key, source, clock, recorder=None):
    runner = prepare_exam(key, source, recorder=recorder, clock=clock)
    runner.start()
    return runner


class TestPrepare:
    def test_prepared_session_waits_on_tutorial(self, source, clock):
        runner = prepare_exam("full-standard", source, clock=clock)
        assert runner.status == SessionStatus.NOT_STARTED
        assert runner.tutorial.page == 1
        assert len(runner.session.mcq_question_ids) == 100
        assert len(runner.session.essay_question_ids) == 2
        assert runner.session.created_at is not None
        assert runner.session.started_at is None
        assert runner.remaining_seconds() is None

    def test_unknown_key_creates_nothing(self, source, recorder, data_client):
        with pytest.raises(InvalidExamConfigError):
            prepare_exam("nope", source, recorder=recorder)
        assert data_client.rows(SESSION_TABLE) == []

    def test_session_row_is_created(self, source, recorder, data_client, clock):
        runner = prepare_exam("quick-10", source, recorder=recorder, user_id="kim", clock=clock)
        rows = data_client.rows(SESSION_TABLE)
        assert [r["id"] for r in rows] == [runner.session.id]
        assert rows[0]["user_id"] == "kim"
        assert rows[0]["status"] == "NOT_STARTED"
        assert runner.warnings == []

    def test_backend_failure_runs_offline(self, source, clock):
        rec = SessionRecorder(FailingDataClient())
        try:
            runner = prepare_exam("quick-10", source, recorder=rec, user_id="kim", clock=clock)
            assert runner.session.id.startswith("local-")
            assert runner.session.offline
            assert runner.warnings == [OFFLINE_WARNING]

            runner.start()
            _answer(runner, 10)
            assert runner.finish_mcq()
            history = rec.history("kim")
            assert [h.id for h in history] == [runner.session.id]
            assert history[0].mcq_score == 100
        finally:
            rec.shutdown()

    def test_shortfall_is_rejected(self, clock):
        config = get_config("quick-10")
        source = QuestionSource(InMemoryDataClient())
        mcqs = source.fetch_mcqs(9, 0.0)
        session = ExamSession(id="s1", config_key=config.key)
        with pytest.raises(QuestionShortfallError):
            ExamRunner(config, session, mcqs, [], clock=clock)


class TestTutorial:
    def test_walk_through_sixteen_pages_starts_exam(self, source, clock):
        runner = prepare_exam("full-standard", source, clock=clock)
        for expected in range(2, 17):
            assert runner.tutorial_next() is False
            assert runner.tutorial.page == expected
        assert runner.status == SessionStatus.NOT_STARTED

        assert runner.tutorial_next() is True
        assert runner.status == SessionStatus.MCQ_IN_PROGRESS
        assert runner.session.started_at is not None

    def test_back_stops_at_first_page(self, source, clock):
        runner = prepare_exam("quick-10", source, clock=clock)
        runner.tutorial_back()
        assert runner.tutorial.page == 1
        runner.tutorial_next()
        runner.tutorial_next()
        runner.tutorial_back()
        assert runner.tutorial.page == 2

    def test_intro_page_reflects_config(self, source, clock):
        runner = prepare_exam("full-challenge", source, clock=clock)
        text = " ".join(runner.intro_page().paragraphs)
        assert "100 multiple-choice" in text
        assert "at least 50%" in text

    def test_tutorial_closed_after_start(self, source, clock):
        runner = _started("quick-10", source, clock)
        with pytest.raises(ExamPhaseError):
            runner.tutorial_next()


class TestMcqSection:
    def test_actions_before_start_are_rejected(self, source, clock):
        runner = prepare_exam("quick-10", source, clock=clock)
        with pytest.raises(ExamPhaseError):
            runner.answer_mcq(runner.mcqs[0].id, 0)
        with pytest.raises(ExamPhaseError):
            runner.navigate(1)

    def test_answer_overwrites_and_clears(self, source, clock):
        runner = _started("quick-10", source, clock)
        qid = runner.mcqs[0].id
        runner.answer_mcq(qid, 0)
        runner.answer_mcq(qid, 2)
        assert runner.session.mcq_answers[qid].selected == 2
        runner.answer_mcq(qid, None)
        assert runner.session.mcq_answers[qid].selected is None

    def test_unknown_question_and_bad_option(self, source, clock):
        runner = _started("quick-10", source, clock)
        with pytest.raises(UnknownQuestionError):
            runner.answer_mcq("not-in-session", 0)
        with pytest.raises(ValueError):
            runner.answer_mcq(runner.mcqs[0].id, 4)
        with pytest.raises(ValueError):
            runner.answer_mcq(runner.mcqs[0].id, -1)

    def test_flag_keeps_answer(self, source, clock):
        runner = _started("quick-10", source, clock)
        qid = runner.mcqs[3].id
        runner.answer_mcq(qid, 1)
        assert runner.toggle_flag(qid).flagged is True
        assert runner.session.mcq_answers[qid].selected == 1
        assert runner.toggle_flag(qid).flagged is False

    def test_navigate_is_clamped_and_answers_survive(self, source, clock):
        runner = _started("quick-10", source, clock)
        runner.answer_mcq(runner.mcqs[0].id, 1)
        assert runner.navigate(99) == 9
        assert runner.navigate(-5) == 0
        assert runner.question_view(0)["selected"] == 1

    def test_question_view_hides_answer(self, source, clock):
        runner = _started("quick-10", source, clock)
        view = runner.question_view(2)
        assert view["kind"] == "mcq"
        assert "correct_index" not in view
        assert (view["index"], view["total"]) == (2, 10)
        with pytest.raises(IndexError):
            runner.question_view(10)

    def test_section_summary(self, source, clock):
        runner = _started("quick-10", source, clock)
        runner.answer_mcq(runner.mcqs[0].id, 0)
        runner.answer_mcq(runner.mcqs[1].id, 1)
        runner.toggle_flag(runner.mcqs[5].id)
        assert runner.section_summary() == {"total": 10, "answered": 2, "unanswered": 8, "flagged": 1}


class TestFinishMcq:
    def test_standard_moves_to_essays_regardless_of_score(self, source, clock):
        runner = _started("full-standard", source, clock)
        assert runner.finish_mcq() is True
        assert runner.status == SessionStatus.ESSAY_IN_PROGRESS
        assert runner.session.mcq_score == 0
        assert runner.session.mcq_completed_at is not None

    def test_second_finish_is_noop(self, source, clock):
        runner = _started("quick-10", source, clock)
        _answer(runner, 7)
        assert runner.finish_mcq() is True
        assert runner.finish_mcq() is False
        assert runner.session.mcq_score == 70
        assert runner.status == SessionStatus.COMPLETED

    def test_answers_frozen_after_finish(self, source, clock):
        runner = _started("mcq-practice", source, clock)
        runner.finish_mcq()
        with pytest.raises(ExamPhaseError):
            runner.answer_mcq(runner.mcqs[0].id, 0)

    @pytest.mark.parametrize("correct", [40, 49])
    def test_challenge_below_threshold_locks_essays(self, source, clock, correct):
        runner = _started("full-challenge", source, clock)
        _answer(runner, correct)
        runner.finish_mcq()
        assert runner.session.mcq_score == correct
        assert runner.status == SessionStatus.ESSAY_LOCKED
        assert runner.session.completed_at is not None
        assert runner.remaining_seconds() is None
        with pytest.raises(ExamPhaseError):
            runner.answer_essay(runner.essays[0].id, "text")

    @pytest.mark.parametrize("correct", [50, 55])
    def test_challenge_at_threshold_unlocks_essays(self, source, clock, correct):
        runner = _started("full-challenge", source, clock)
        _answer(runner, correct)
        runner.finish_mcq()
        assert runner.status == SessionStatus.ESSAY_IN_PROGRESS
        assert runner.remaining_seconds() == 60 * 60

    def test_concurrent_finish_applies_once(self, source, clock):
        runner = _started("quick-10", source, clock)
        finished = []
        seen = []
        runner.events.subscribe(lambda e: seen.append(e.kind))

        def worker():
            finished.append(runner.finish_mcq())

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert finished.count(True) == 1
        assert seen.count(ev.MCQ_FINISHED) == 1


class TestTimers:
    def test_tick_before_deadline_does_nothing(self, source, clock):
        runner = _started("quick-10", source, clock)
        clock.advance(15 * 60 - 1)
        assert runner.tick() is False
        assert runner.status == SessionStatus.MCQ_IN_PROGRESS
        assert runner.remaining_seconds() == 1

    def test_mcq_expiry_scores_and_moves_on(self, source, clock):
        runner = _started("full-standard", source, clock)
        _answer(runner, 30)
        seen = []
        runner.events.subscribe(lambda e: seen.append(e))
        clock.advance(180 * 60)
        assert runner.tick() is True
        assert runner.status == SessionStatus.ESSAY_IN_PROGRESS
        assert runner.session.mcq_score == 30
        assert seen[-1].payload["trigger"] == "timer"
        assert runner.remaining_seconds() == 60 * 60

    def test_essay_expiry_completes(self, source, clock):
        runner = _started("essay-practice", source, clock)
        runner.answer_essay(runner.essays[0].id, "some words here")
        clock.advance(60 * 60 + 5)
        assert runner.tick() is True
        assert runner.status == SessionStatus.COMPLETED
        assert runner.session.essay_answers[runner.essays[1].id] == ""

    def test_timer_after_user_finish_is_ignored(self, source, clock):
        runner = _started("mcq-practice", source, clock)
        runner.finish_mcq()
        clock.advance(10_000)
        assert runner.tick() is False

    def test_alert_levels(self, source, clock):
        runner = _started("full-standard", source, clock)
        assert runner.state()["time_alert_minutes"] is None
        clock.advance(150 * 60)
        assert runner.state()["time_alert_minutes"] == 30
        clock.advance(15 * 60)
        assert runner.state()["time_alert_minutes"] == 15
        clock.advance(10 * 60)
        assert runner.state()["time_alert_minutes"] == 5

    def test_state_counts_down_in_whole_seconds(self, source, clock):
        runner = _started("quick-10", source, clock)
        assert runner.state()["remaining_seconds"] == 15 * 60
        clock.advance(0.4)
        assert runner.state()["remaining_seconds"] == 15 * 60
        clock.advance(1.0)
        assert runner.state()["remaining_seconds"] == 15 * 60 - 1


class TestEssaySection:
    def test_essay_practice_starts_in_essays(self, source, clock):
        runner = _started("essay-practice", source, clock)
        assert runner.status == SessionStatus.ESSAY_IN_PROGRESS
        assert runner.question_view(0)["kind"] == "essay"
        assert runner.results()["mcq_total"] == 0

    def test_word_count_and_unknown_essay(self, source, clock):
        runner = _started("essay-practice", source, clock)
        assert runner.answer_essay(runner.essays[0].id, "  one two\nthree ") == 3
        with pytest.raises(UnknownQuestionError):
            runner.answer_essay("missing", "x")
        assert runner.section_summary()["answered"] == 1

    def test_finish_essay_once(self, source, clock):
        runner = _started("essay-practice", source, clock)
        assert runner.finish_essay() is True
        assert runner.finish_essay() is False
        assert runner.session.completed_at is not None


class TestResults:
    def test_results_require_scored_mcqs(self, source, clock):
        runner = _started("quick-10", source, clock)
        with pytest.raises(ExamPhaseError):
            runner.results()

    def test_results_shape(self, source, clock):
        runner = _started("full-challenge", source, clock)
        _answer(runner, 40)
        runner.finish_mcq()
        result = runner.results()
        assert result["essay_locked"] is True
        assert result["mcq_correct"] == 40
        assert result["pass_threshold"] == 50.0
        assert len(result["incorrect_questions"]) == 60
        wrong = result["incorrect_questions"][0]
        assert wrong["selected"] != wrong["correct_index"]
        assert wrong["correct_letter"] in "ABCD"
        assert all(e["graded"] is False for e in result["essays"])


class TestExitAndEvents:
    def test_exit_discards_timers_and_blocks_actions(self, source, clock):
        runner = _started("quick-10", source, clock)
        runner.exit()
        clock.advance(10_000)
        assert runner.tick() is False
        assert runner.finish_mcq() is False
        with pytest.raises(ExamPhaseError, match="exited"):
            runner.answer_mcq(runner.mcqs[0].id, 0)
        assert runner.status == SessionStatus.MCQ_IN_PROGRESS

    def test_event_sequence(self, source, clock):
        runner = prepare_exam("quick-10", source, clock=clock)
        kinds = []
        runner.events.subscribe(lambda e: kinds.append(e.kind))
        runner.start()
        runner.answer_mcq(runner.mcqs[0].id, 0)
        runner.toggle_flag(runner.mcqs[0].id)
        runner.navigate(3)
        runner.finish_mcq()
        runner.exit()
        assert kinds == [ev.STARTED, ev.MCQ_ANSWERED, ev.MCQ_FLAGGED, ev.NAVIGATED, ev.MCQ_FINISHED, ev.EXITED]
        assert runner.events.handler_count == 0

    def test_progress_is_persisted(self, source, recorder, data_client, clock):
        runner = _started("quick-10", source, clock, recorder=recorder)
        _answer(runner, 10)
        runner.finish_mcq()
        recorder.flush()
        row = data_client.rows(SESSION_TABLE)[0]
        assert row["status"] == "COMPLETED"
        assert row["mcq_score"] == 100
        assert len(row["mcq_answers"]) == 10
