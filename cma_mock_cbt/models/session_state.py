"""
models/session_state.py

시험 세션(응시 1회) 상태를 담는 OMR 카드 모델.
Pydantic BaseModel 기반: 직렬화/역직렬화 및 타입 안전성 확보.
상태 전이 규칙은 services/exam_session.py의 ExamRunner가 담당한다.
"""

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

ANONYMOUS_USER = "anonymous"


class SessionStatus(str, Enum):
    NOT_STARTED = "NOT_STARTED"
    MCQ_IN_PROGRESS = "MCQ_IN_PROGRESS"
    ESSAY_LOCKED = "ESSAY_LOCKED"
    ESSAY_IN_PROGRESS = "ESSAY_IN_PROGRESS"
    COMPLETED = "COMPLETED"

    @property
    def is_finished(self) -> bool:
        return self in (SessionStatus.ESSAY_LOCKED, SessionStatus.COMPLETED)


class MCQAnswer(BaseModel):
    """객관식 답안 한 칸. selected=None 이면 미응답."""

    selected: Optional[int] = Field(default=None, ge=0, le=3)
    flagged: bool = False


class ExamSession(BaseModel):
    """
    사용자의 시험 세션 전체 상태를 표현하는 모델.

    Attributes:
        id:                 세션 ID (오프라인이면 "local-" 접두사)
        user_id:            응시자 ID, 로그인하지 않았으면 "anonymous"
        config_key:         카탈로그 키
        status:             진행 단계
        mcq_question_ids:   출제된 객관식 문제 ID (출제 순서)
        essay_question_ids: 출제된 에세이 문제 ID
        mcq_answers:        {question.id: MCQAnswer}
        essay_answers:      {question.id: 답안 텍스트}
        current_index:      현재 단계에서 보고 있는 문제 인덱스 (0-based)
        mcq_score:          객관식 점수(%): 섹션 종료 시 1회 계산
        mcq_correct:        객관식 정답 수
        offline:            백엔드 저장 실패로 메모리에만 존재하는 세션
    """

    id: str
    user_id: str = ANONYMOUS_USER
    config_key: str
    status: SessionStatus = SessionStatus.NOT_STARTED
    mcq_question_ids: List[str] = Field(default_factory=list)
    essay_question_ids: List[str] = Field(default_factory=list)
    mcq_answers: Dict[str, MCQAnswer] = Field(default_factory=dict)
    essay_answers: Dict[str, str] = Field(default_factory=dict)
    current_index: int = Field(default=0, ge=0)
    mcq_score: Optional[int] = None
    mcq_correct: Optional[int] = None
    created_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    mcq_completed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    offline: bool = False

    def to_record(self) -> dict:
        """exam_sessions 테이블에 기록할 행."""
        data = self.model_dump(mode="json", exclude={"offline", "current_index"})
        data["current_question_index"] = self.current_index
        return data


class SessionHistoryItem(BaseModel):
    """히스토리 목록 한 줄 (답안 재생 없음)."""

    id: str
    config_key: str
    title: str = ""
    status: SessionStatus
    mcq_score: Optional[int] = None
    date: Optional[datetime] = None
