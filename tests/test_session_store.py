from datetime import datetime, timezone

import pytest

from cma_mock_cbt.errors import DataClientError
from cma_mock_cbt.models.session_state import ANONYMOUS_USER, ExamSession, MCQAnswer, SessionStatus
from cma_mock_cbt.services.data_client import InMemoryDataClient
from cma_mock_cbt.services.exam_session import OFFLINE_WARNING, prepare_exam
from cma_mock_cbt.services.session_store import SESSION_TABLE, SessionRecorder
from tests.fakes import FailingDataClient


class UpdateFailingClient(InMemoryDataClient):
    def update(self, table, match, values):
        raise DataClientError("write refused")


@pytest.fixture
def store():
    client = InMemoryDataClient()
    recorder = SessionRecorder(client)
    yield recorder, client
    recorder.shutdown()


def _session(sid="s1", user="kim", **kw):
    return ExamSession(id=sid, user_id=user, config_key="quick-10", **kw)


def _at(day):
    return datetime(2024, 5, day, tzinfo=timezone.utc)


class TestCreateAndSave:
    def test_create_inserts_row(self, store):
        recorder, client = store
        assert recorder.create(_session()) is True
        row = client.rows(SESSION_TABLE)[0]
        assert row["id"] == "s1"
        assert row["status"] == "NOT_STARTED"
        assert "offline" not in row
        assert row["current_question_index"] == 0

    def test_create_failure_returns_false(self):
        recorder = SessionRecorder(FailingDataClient())
        try:
            assert recorder.create(_session()) is False
            assert recorder.last_error == "backend down"
        finally:
            recorder.shutdown()

    def test_latest_snapshot_wins(self, store):
        recorder, client = store
        session = _session()
        recorder.create(session)
        for i in range(4):
            session.mcq_answers[f"q{i}"] = MCQAnswer(selected=i % 4)
            session.current_index = i
            recorder.save(session)
        session.status = SessionStatus.COMPLETED
        recorder.save(session)
        recorder.flush()

        row = client.rows(SESSION_TABLE)[0]
        assert row["status"] == "COMPLETED"
        assert row["current_question_index"] == 3
        assert set(row["mcq_answers"]) == {"q0", "q1", "q2", "q3"}

    def test_save_snapshot_is_taken_at_call_time(self, store):
        recorder, client = store
        session = _session()
        recorder.create(session)
        recorder.save(session)
        recorder.flush()
        session.status = SessionStatus.COMPLETED
        assert client.rows(SESSION_TABLE)[0]["status"] == "NOT_STARTED"

    def test_write_failure_is_recorded_not_raised(self):
        client = UpdateFailingClient()
        recorder = SessionRecorder(client)
        try:
            session = _session()
            recorder.create(session)
            recorder.save(session).result(timeout=5)
            assert recorder.last_error == "write refused"
        finally:
            recorder.shutdown()

    def test_offline_session_is_kept_in_memory(self, store):
        recorder, client = store
        session = _session("local-1", offline=True, created_at=_at(1))
        assert recorder.save(session) is None
        assert client.rows(SESSION_TABLE) == []
        assert [h.id for h in recorder.history("kim")] == ["local-1"]


class TestHistory:
    def test_most_recent_first_with_limit(self, store):
        recorder, client = store
        client.seed(
            SESSION_TABLE,
            [
                _session("old", created_at=_at(1)).to_record(),
                _session("new", created_at=_at(3), status=SessionStatus.COMPLETED, mcq_score=80).to_record(),
                _session("mid", created_at=_at(2)).to_record(),
                _session("other", user="lee", created_at=_at(4)).to_record(),
            ],
        )
        history = recorder.history("kim", limit=2)
        assert [h.id for h in history] == ["new", "mid"]
        assert history[0].mcq_score == 80
        assert history[0].title
        assert history[0].status == SessionStatus.COMPLETED

    def test_anonymous_has_no_history(self, store):
        recorder, client = store
        client.seed(SESSION_TABLE, [_session(user=ANONYMOUS_USER, created_at=_at(1)).to_record()])
        assert recorder.history(ANONYMOUS_USER) == []
        assert recorder.history("") == []

    def test_malformed_rows_are_skipped(self, store):
        recorder, client = store
        bad = _session("bad", created_at=_at(2)).to_record()
        bad["status"] = "PAUSED"
        client.seed(SESSION_TABLE, [bad, _session("good", created_at=_at(1)).to_record()])
        assert [h.id for h in recorder.history("kim")] == ["good"]

    def test_backend_failure_returns_offline_sessions_only(self):
        recorder = SessionRecorder(FailingDataClient())
        try:
            recorder.save(_session("local-a", offline=True, created_at=_at(1)))
            recorder.save(_session("local-b", user="lee", offline=True, created_at=_at(1)))
            assert [h.id for h in recorder.history("kim")] == ["local-a"]
        finally:
            recorder.shutdown()


class TestAttach:
    def test_runner_events_are_persisted(self, store, source, clock):
        recorder, client = store
        runner = prepare_exam("quick-10", source, recorder=recorder, user_id="kim", clock=clock)
        runner.start()
        runner.answer_mcq(runner.mcqs[0].id, runner.mcqs[0].correct_index)
        recorder.flush()
        row = client.rows(SESSION_TABLE)[0]
        assert row["status"] == "MCQ_IN_PROGRESS"
        assert row["started_at"] is not None
        assert list(row["mcq_answers"]) == [runner.mcqs[0].id]

    def test_finished_session_survives_exit(self, store, source, clock):
        recorder, client = store
        runner = prepare_exam("mcq-practice", source, recorder=recorder, user_id="kim", clock=clock)
        runner.start()
        runner.finish_mcq()
        runner.exit()
        recorder.flush()
        assert client.rows(SESSION_TABLE)[0]["status"] == "COMPLETED"
        assert [h.status for h in recorder.history("kim")] == [SessionStatus.COMPLETED]

    def test_unsubscribe(self, store, source, clock):
        recorder, client = store
        runner = prepare_exam("quick-10", source, clock=clock)
        detach = recorder.attach(runner)
        detach()
        assert runner.events.handler_count == 0

    def test_cancel_pending_without_work(self, store):
        recorder, _ = store
        assert recorder.cancel_pending("nothing") == 0


class TestSaveFailureGoesOffline:
    def test_failed_save_warns_runner(self, source, clock):
        client = UpdateFailingClient()
        recorder = SessionRecorder(client)
        try:
            runner = prepare_exam("quick-10", source, recorder=recorder, user_id="kim", clock=clock)
            assert runner.warnings == []
            runner.start()
            runner.answer_mcq(runner.mcqs[0].id, 1)
            recorder.flush()

            assert recorder.last_error == "write refused"
            assert runner.session.offline is True
            assert runner.warnings == [OFFLINE_WARNING]
            assert runner.state()["warnings"] == [OFFLINE_WARNING]
            assert runner.state()["offline"] is True
        finally:
            recorder.shutdown()

    def test_progress_after_failure_is_kept_in_memory(self, source, clock):
        client = UpdateFailingClient()
        recorder = SessionRecorder(client)
        try:
            runner = prepare_exam("quick-10", source, recorder=recorder, user_id="kim", clock=clock)
            runner.start()
            recorder.flush()
            for q in runner.mcqs:
                runner.answer_mcq(q.id, q.correct_index)
            runner.finish_mcq()
            recorder.flush()

            history = recorder.history("kim")
            assert [h.id for h in history] == [runner.session.id]
            assert history[0].status == SessionStatus.COMPLETED
            assert history[0].mcq_score == 100
        finally:
            recorder.shutdown()

    def test_update_of_missing_row_counts_as_failure(self, store, source, clock):
        recorder, client = store
        runner = prepare_exam("quick-10", source, clock=clock)
        recorder.attach(runner)
        runner.start()
        recorder.flush()
        assert client.rows(SESSION_TABLE) == []
        assert recorder.last_error
        assert runner.warnings == [OFFLINE_WARNING]

    def test_detached_runner_is_not_touched(self, source, clock):
        recorder = SessionRecorder(UpdateFailingClient())
        try:
            runner = prepare_exam("quick-10", source, recorder=recorder, user_id="kim", clock=clock)
            recorder.save(runner.session)
            recorder.flush()
            assert runner.session.offline is True

            other = prepare_exam("quick-10", source, clock=clock)
            recorder.attach(other)()
            recorder.save(other.session)
            recorder.flush()
            assert other.warnings == []
        finally:
            recorder.shutdown()
