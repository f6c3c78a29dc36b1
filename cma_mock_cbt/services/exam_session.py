"""
services/exam_session.py

시험 1회 응시의 상태 머신.

  NOT_STARTED ─start─▶ MCQ_IN_PROGRESS ─finish_mcq─▶ COMPLETED          (에세이 없음)
                                                  ├─▶ ESSAY_LOCKED       (CHALLENGE, 기준 미달)
                                                  └─▶ ESSAY_IN_PROGRESS ─finish_essay─▶ COMPLETED
  (객관식이 없는 시험은 start에서 바로 ESSAY_IN_PROGRESS)

- 모든 전이는 하나의 RLock 아래에서 현재 상태를 확인한 뒤 수행한다.
  사용자 클릭과 타이머 만료가 거의 동시에 들어와도 첫 번째만 반영되고 두 번째는 no-op.
- 답안은 문제 ID를 키로 저장: 이동(navigate)해도 유실되지 않고, 다시 고르면 덮어쓴다.
- 상태가 바뀔 때마다 ExamEventBus로 이벤트를 발행 (저장은 구독자가 담당).
"""

import logging
import math
import threading
import time
import uuid
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from cma_mock_cbt.errors import ExamPhaseError, QuestionShortfallError, UnknownQuestionError
from cma_mock_cbt.models.exam_config import ExamConfig
from cma_mock_cbt.models.question_model import OPTION_LETTERS, EssayQuestion, MCQQuestion
from cma_mock_cbt.models.session_state import ANONYMOUS_USER, ExamSession, MCQAnswer, SessionStatus
from cma_mock_cbt.services import events as ev
from cma_mock_cbt.services.exam_catalog import get_config
from cma_mock_cbt.services.exam_service import (
    calculate_score,
    calculate_section_scores,
    essay_summary,
    get_incorrect_questions,
    next_status_after_mcq,
    section_summary,
    word_count,
)
from cma_mock_cbt.services.intro_pages import IntroPage, TutorialPaginator, render_page
from cma_mock_cbt.services.question_source import QuestionSource
from cma_mock_cbt.services.timer import PhaseTimer

logger = logging.getLogger(__name__)

OFFLINE_WARNING = (
    "Your progress could not be saved to the server. The exam continues on this device, "
    "but it may not be recoverable after a reload."
)

TRIGGER_USER = "user"
TRIGGER_TIMER = "timer"


class ExamRunner:
    """
    Args:
        config:    시험 설정 (카탈로그에서 조회된 것)
        session:   세션 모델 (NOT_STARTED)
        mcqs:      출제된 객관식 문제 (순서 = 출제 순서)
        essays:    출제된 에세이 문제
        clock:     현재 시각 함수 (타이머/타임스탬프 공용)
    """

    def __init__(
        self,
        config: ExamConfig,
        session: ExamSession,
        mcqs: List[MCQQuestion],
        essays: List[EssayQuestion],
        clock: Callable[[], float] = time.time,
    ):
        if len(mcqs) != config.mcq_count or len(essays) != config.essay_count:
            raise QuestionShortfallError(
                f"{config.key}: 객관식 {len(mcqs)}/{config.mcq_count}, 에세이 {len(essays)}/{config.essay_count}"
            )
        self.config = config
        self.session = session
        self.mcqs = list(mcqs)
        self.essays = list(essays)
        self._mcq_by_id: Dict[str, MCQQuestion] = {q.id: q for q in self.mcqs}
        self._essay_by_id: Dict[str, EssayQuestion] = {e.id: e for e in self.essays}
        self._clock = clock
        self._lock = threading.RLock()
        self.events = ev.ExamEventBus()
        self.tutorial = TutorialPaginator()
        self.warnings: List[str] = []
        self.exited = False
        self._mcq_timer: Optional[PhaseTimer] = (
            PhaseTimer(config.mcq_duration_minutes * 60, clock) if config.mcq_count else None
        )
        self._essay_timer: Optional[PhaseTimer] = (
            PhaseTimer(config.essay_duration_minutes * 60, clock) if config.essay_count else None
        )
        session.mcq_question_ids = [q.id for q in self.mcqs]
        session.essay_question_ids = [e.id for e in self.essays]
        if session.offline:
            self.warnings.append(OFFLINE_WARNING)

    # ── 공통 ─────────────────────────────────────────────────────────────────

    @property
    def status(self) -> SessionStatus:
        return self.session.status

    def _now(self) -> datetime:
        return datetime.fromtimestamp(self._clock(), tz=timezone.utc)

    def _publish(self, kind: str, **payload) -> None:
        self.events.publish(ev.ExamEvent(kind=kind, session_id=self.session.id, payload=payload))

    def _require(self, *allowed: SessionStatus) -> None:
        if self.exited:
            raise ExamPhaseError("exam has been exited")
        if self.session.status not in allowed:
            names = ", ".join(s.value for s in allowed)
            raise ExamPhaseError(f"action requires {names}, session is {self.session.status.value}")

    def mark_offline(self) -> None:
        """저장소 연결이 끊겨 메모리에서만 진행 중임을 표시 (경고 1회)."""
        with self._lock:
            self.session.offline = True
            if OFFLINE_WARNING not in self.warnings:
                self.warnings.append(OFFLINE_WARNING)

    # ── 튜토리얼 ─────────────────────────────────────────────────────────────

    def intro_page(self) -> IntroPage:
        return render_page(self.tutorial.page, self.config, len(self.mcqs), len(self.essays))

    def tutorial_next(self) -> bool:
        """다음 페이지. 16페이지에서 누르면 시험을 시작하고 True 반환."""
        with self._lock:
            self._require(SessionStatus.NOT_STARTED)
            if self.tutorial.next():
                self.start()
                return True
            return False

    def tutorial_back(self) -> None:
        with self._lock:
            self._require(SessionStatus.NOT_STARTED)
            self.tutorial.back()

    # ── 시작 ─────────────────────────────────────────────────────────────────

    def start(self) -> None:
        with self._lock:
            self._require(SessionStatus.NOT_STARTED)
            self.session.started_at = self._now()
            self.session.current_index = 0
            if self.mcqs:
                self.session.status = SessionStatus.MCQ_IN_PROGRESS
                self._mcq_timer.start()
            else:
                self.session.status = SessionStatus.ESSAY_IN_PROGRESS
                self._essay_timer.start()
            logger.info(f"시험 시작: {self.session.id} → {self.session.status.value}")
            self._publish(ev.STARTED, status=self.session.status.value)

    # ── 객관식 ───────────────────────────────────────────────────────────────

    def _mcq(self, question_id: str) -> MCQQuestion:
        q = self._mcq_by_id.get(question_id)
        if q is None:
            raise UnknownQuestionError(question_id)
        return q

    def answer_mcq(self, question_id: str, option_index: Optional[int]) -> MCQAnswer:
        """보기 선택 (None이면 선택 해제). 이전 값은 덮어쓴다."""
        with self._lock:
            self._require(SessionStatus.MCQ_IN_PROGRESS)
            self._mcq(question_id)
            if option_index is not None and not 0 <= option_index < len(OPTION_LETTERS):
                raise ValueError(f"option index must be 0..{len(OPTION_LETTERS) - 1}")
            current = self.session.mcq_answers.get(question_id, MCQAnswer())
            answer = current.model_copy(update={"selected": option_index})
            self.session.mcq_answers[question_id] = answer
            self._publish(ev.MCQ_ANSWERED, question_id=question_id, selected=option_index)
            return answer

    def toggle_flag(self, question_id: str) -> MCQAnswer:
        with self._lock:
            self._require(SessionStatus.MCQ_IN_PROGRESS)
            self._mcq(question_id)
            current = self.session.mcq_answers.get(question_id, MCQAnswer())
            answer = current.model_copy(update={"flagged": not current.flagged})
            self.session.mcq_answers[question_id] = answer
            self._publish(ev.MCQ_FLAGGED, question_id=question_id, flagged=answer.flagged)
            return answer

    def navigate(self, index: int) -> int:
        """현재 단계의 문제 인덱스로 이동 (범위 보정)."""
        with self._lock:
            self._require(SessionStatus.MCQ_IN_PROGRESS, SessionStatus.ESSAY_IN_PROGRESS)
            total = len(self.current_questions())
            idx = max(0, min(index, total - 1))
            self.session.current_index = idx
            self._publish(ev.NAVIGATED, index=idx)
            return idx

    def finish_mcq(self, trigger: str = TRIGGER_USER) -> bool:
        """
        객관식 섹션 종료 (사용자 클릭 또는 타이머 만료 공용).

        Returns:
            True:  이번 호출로 전이가 일어남
            False: 이미 다음 단계로 넘어간 상태 (no-op, 점수 불변)
        """
        with self._lock:
            if self.exited or self.session.status != SessionStatus.MCQ_IN_PROGRESS:
                logger.debug(f"finish_mcq 무시 ({trigger}): status={self.session.status.value}")
                return False

            correct, score = calculate_score(self.mcqs, self.session.mcq_answers)
            now = self._now()
            self.session.mcq_correct = correct
            self.session.mcq_score = score
            self.session.mcq_completed_at = now
            self.session.current_index = 0
            self._mcq_timer.cancel()

            status = next_status_after_mcq(self.config, score)
            self.session.status = status
            if status == SessionStatus.ESSAY_IN_PROGRESS:
                self._essay_timer.start()
            else:
                self.session.completed_at = now

            logger.info(
                f"객관식 종료 ({trigger}): {self.session.id} 점수 {score}% "
                f"({correct}/{len(self.mcqs)}) → {status.value}"
            )
            self._publish(ev.MCQ_FINISHED, trigger=trigger, score=score, status=status.value)
            return True

    # ── 에세이 ───────────────────────────────────────────────────────────────

    def answer_essay(self, question_id: str, text: str) -> int:
        """에세이 답안 저장 (덮어쓰기). 단어 수 반환."""
        with self._lock:
            self._require(SessionStatus.ESSAY_IN_PROGRESS)
            if question_id not in self._essay_by_id:
                raise UnknownQuestionError(question_id)
            self.session.essay_answers[question_id] = text or ""
            words = word_count(text or "")
            self._publish(ev.ESSAY_ANSWERED, question_id=question_id, words=words)
            return words

    def finish_essay(self, trigger: str = TRIGGER_USER) -> bool:
        """에세이 섹션 종료. 미작성 에세이는 빈 문자열로 기록."""
        with self._lock:
            if self.exited or self.session.status != SessionStatus.ESSAY_IN_PROGRESS:
                logger.debug(f"finish_essay 무시 ({trigger}): status={self.session.status.value}")
                return False
            for essay in self.essays:
                self.session.essay_answers.setdefault(essay.id, "")
            self._essay_timer.cancel()
            self.session.status = SessionStatus.COMPLETED
            self.session.completed_at = self._now()
            logger.info(f"에세이 종료 ({trigger}): {self.session.id} → COMPLETED")
            self._publish(ev.ESSAY_FINISHED, trigger=trigger)
            return True

    # ── 타이머 / 종료 ────────────────────────────────────────────────────────

    def active_timer(self) -> Optional[PhaseTimer]:
        if self.session.status == SessionStatus.MCQ_IN_PROGRESS:
            return self._mcq_timer
        if self.session.status == SessionStatus.ESSAY_IN_PROGRESS:
            return self._essay_timer
        return None

    def remaining_seconds(self) -> Optional[float]:
        timer = self.active_timer()
        return timer.remaining() if timer else None

    def tick(self, now: Optional[float] = None) -> bool:
        """주기 콜백. 현재 단계 타이머가 만료됐으면 해당 섹션을 종료하고 True."""
        with self._lock:
            if self.exited:
                return False
            timer = self.active_timer()
            if timer is None or not timer.expired(now):
                return False
            if self.session.status == SessionStatus.MCQ_IN_PROGRESS:
                return self.finish_mcq(TRIGGER_TIMER)
            return self.finish_essay(TRIGGER_TIMER)

    def exit(self) -> None:
        """시험 흐름 이탈. 타이머를 버리고 이후 동작은 모두 거부/무시된다."""
        with self._lock:
            if self.exited:
                return
            for timer in (self._mcq_timer, self._essay_timer):
                if timer is not None:
                    timer.cancel()
            self._publish(ev.EXITED, status=self.session.status.value)
            self.exited = True
            self.events.clear()
            logger.info(f"시험 이탈: {self.session.id} ({self.session.status.value})")

    # ── 조회 ─────────────────────────────────────────────────────────────────

    def current_questions(self) -> list:
        if self.session.status == SessionStatus.ESSAY_IN_PROGRESS:
            return self.essays
        return self.mcqs

    def question_view(self, index: int) -> dict:
        """현재 단계의 index번째 문제 (정답 제외) + 저장된 답."""
        questions = self.current_questions()
        if not 0 <= index < len(questions):
            raise IndexError(index)
        q = questions[index]
        data = q.public_dict()
        if isinstance(q, MCQQuestion):
            answer = self.session.mcq_answers.get(q.id, MCQAnswer())
            data.update({"kind": "mcq", "selected": answer.selected, "flagged": answer.flagged})
        else:
            data.update({"kind": "essay", "text": self.session.essay_answers.get(q.id, "")})
        data.update({"index": index, "total": len(questions)})
        return data

    def section_summary(self) -> Dict[str, int]:
        if self.session.status == SessionStatus.ESSAY_IN_PROGRESS:
            return essay_summary(self.session.essay_question_ids, self.session.essay_answers)
        return section_summary(self.session.mcq_question_ids, self.session.mcq_answers)

    def state(self) -> dict:
        remaining = self.remaining_seconds()
        timer = self.active_timer()
        return {
            "session_id": self.session.id,
            "config_key": self.config.key,
            "title": self.config.title,
            "status": self.session.status.value,
            "intro_page": self.tutorial.page if self.session.status == SessionStatus.NOT_STARTED else None,
            "current_index": self.session.current_index,
            "remaining_seconds": None if remaining is None else math.ceil(remaining),
            "time_alert_minutes": timer.alert_level() if timer else None,
            "summary": self.section_summary(),
            "mcq_score": self.session.mcq_score,
            "offline": self.session.offline,
            "warnings": list(self.warnings),
            "exited": self.exited,
        }

    def results(self) -> dict:
        """객관식 종료 후 결과. 에세이는 채점하지 않는다 (작성 여부만)."""
        if self.config.mcq_count and self.session.mcq_score is None:
            raise ExamPhaseError("results are available after the MCQ section")
        answers = self.session.mcq_answers
        incorrect = get_incorrect_questions(self.mcqs, answers)
        review = []
        for q in incorrect:
            a = answers.get(q.id)
            review.append({
                **q.model_dump(),
                "correct_letter": q.correct_letter,
                "selected": a.selected if a else None,
            })
        return {
            "session_id": self.session.id,
            "status": self.session.status.value,
            "mcq_score": self.session.mcq_score,
            "mcq_correct": self.session.mcq_correct,
            "mcq_total": len(self.mcqs),
            "pass_threshold": self.config.mcq_pass_threshold,
            "essay_locked": self.session.status == SessionStatus.ESSAY_LOCKED,
            "section_scores": calculate_section_scores(self.mcqs, answers),
            "essays": [
                {
                    "id": e.id,
                    "topic": e.topic,
                    "words": word_count(self.session.essay_answers.get(e.id, "")),
                    "graded": False,
                }
                for e in self.essays
            ],
            "incorrect_questions": review,
        }

    def mcq_by_id(self, question_id: str) -> MCQQuestion:
        return self._mcq(question_id)


def prepare_exam(
    config_key: str,
    source: QuestionSource,
    recorder=None,
    user_id: str = ANONYMOUS_USER,
    clock: Callable[[], float] = time.time,
) -> ExamRunner:
    """
    시험 준비: 설정 조회 → 출제 → 세션 생성(NOT_STARTED, 튜토리얼 1페이지).

    Raises:
        InvalidExamConfigError: 알 수 없는 키 (세션을 만들지 않음)
        QuestionShortfallError: 출제 수가 설정과 다름 (세션을 만들지 않음)
    """
    config = get_config(config_key)

    mcqs = source.fetch_mcqs(config.mcq_count, config.hybrid_ratio, config.part) if config.mcq_count else []
    essays = source.fetch_essays(config.essay_count, config.part) if config.essay_count else []

    session = ExamSession(
        id=uuid.uuid4().hex,
        user_id=user_id or ANONYMOUS_USER,
        config_key=config.key,
        created_at=datetime.fromtimestamp(clock(), tz=timezone.utc),
    )
    runner = ExamRunner(config, session, mcqs, essays, clock=clock)

    if recorder is not None:
        if not recorder.create(session):
            session.id = f"local-{session.id}"
            runner.mark_offline()
            recorder.save(session)
        recorder.attach(runner)
    return runner
