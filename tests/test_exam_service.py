import pytest

from cma_mock_cbt.models.question_model import MCQQuestion
from cma_mock_cbt.models.session_state import MCQAnswer, SessionStatus
from cma_mock_cbt.services.exam_catalog import get_config
from cma_mock_cbt.services.exam_service import (
    calculate_score,
    calculate_section_scores,
    essay_summary,
    get_incorrect_questions,
    is_essay_unlocked,
    next_status_after_mcq,
    section_summary,
    word_count,
)


def _questions(n, section="General"):
    return [
        MCQQuestion(id=f"q{i}", question_text=f"Q{i}", options=["a", "b", "c", "d"], correct_index=0, section=section)
        for i in range(n)
    ]


def _answers(questions, n_correct, wrong=1):
    return {
        q.id: MCQAnswer(selected=0 if i < n_correct else wrong)
        for i, q in enumerate(questions)
    }


class TestCalculateScore:
    def test_empty(self):
        assert calculate_score([], {}) == (0, 0)

    @pytest.mark.parametrize(
        "total,correct,expected",
        [(10, 7, 70), (8, 1, 13), (8, 3, 38), (16, 1, 6), (3, 2, 67), (3, 1, 33), (100, 100, 100)],
    )
    def test_round_half_up(self, total, correct, expected):
        qs = _questions(total)
        assert calculate_score(qs, _answers(qs, correct)) == (correct, expected)

    def test_unanswered_and_flag_only_count_wrong(self):
        qs = _questions(4)
        answers = {
            "q0": MCQAnswer(selected=0),
            "q1": MCQAnswer(selected=None),
            "q2": MCQAnswer(flagged=True),
        }
        assert calculate_score(qs, answers) == (1, 25)

    def test_flag_does_not_change_score(self):
        qs = _questions(2)
        plain = {"q0": MCQAnswer(selected=0), "q1": MCQAnswer(selected=0)}
        flagged = {"q0": MCQAnswer(selected=0, flagged=True), "q1": MCQAnswer(selected=0, flagged=True)}
        assert calculate_score(qs, plain) == calculate_score(qs, flagged) == (2, 100)


class TestGate:
    def test_standard_always_unlocked(self):
        config = get_config("full-standard")
        assert is_essay_unlocked(config, 0)
        assert next_status_after_mcq(config, 0) == SessionStatus.ESSAY_IN_PROGRESS

    @pytest.mark.parametrize("score,status", [(49, SessionStatus.ESSAY_LOCKED), (50, SessionStatus.ESSAY_IN_PROGRESS)])
    def test_challenge_threshold_is_inclusive(self, score, status):
        assert next_status_after_mcq(get_config("full-challenge"), score) == status

    def test_challenge_without_score(self):
        assert not is_essay_unlocked(get_config("full-challenge"), None)

    def test_no_essays_completes(self):
        config = get_config("mcq-practice")
        assert not is_essay_unlocked(config, 100)
        assert next_status_after_mcq(config, 100) == SessionStatus.COMPLETED


class TestSummaries:
    def test_section_summary(self):
        answers = {
            "a": MCQAnswer(selected=1),
            "b": MCQAnswer(selected=None, flagged=True),
            "c": MCQAnswer(selected=2, flagged=True),
        }
        assert section_summary(["a", "b", "c", "d"], answers) == {
            "total": 4,
            "answered": 2,
            "unanswered": 2,
            "flagged": 2,
        }

    def test_essay_summary_ignores_whitespace(self):
        summary = essay_summary(["e1", "e2"], {"e1": "text", "e2": "   "})
        assert summary == {"total": 2, "answered": 1, "unanswered": 1, "flagged": 0}

    @pytest.mark.parametrize("text,count", [("", 0), ("one", 1), ("  a  b\n\tc ", 3), (None, 0)])
    def test_word_count(self, text, count):
        assert word_count(text) == count


class TestReview:
    def test_incorrect_questions_keep_order(self):
        qs = _questions(5)
        answers = {"q0": MCQAnswer(selected=0), "q2": MCQAnswer(selected=3), "q4": MCQAnswer(selected=0)}
        assert [q.id for q in get_incorrect_questions(qs, answers)] == ["q1", "q2", "q3"]

    def test_section_scores(self):
        qs = _questions(3, "Budgeting") + [
            MCQQuestion(id="x", question_text="X", options=["a", "b", "c", "d"], correct_index=1, section="")
        ]
        answers = {"q0": MCQAnswer(selected=0), "q1": MCQAnswer(selected=2), "x": MCQAnswer(selected=1)}
        scores = calculate_section_scores(qs, answers)
        assert [s["section"] for s in scores] == ["Budgeting", "General"]
        budgeting = scores[0]
        assert (budgeting["correct"], budgeting["incorrect"], budgeting["unanswered"]) == (1, 1, 1)
        assert budgeting["score"] == 33.3
        assert scores[1]["score"] == 100.0
