"""
services/exam_service.py

시험 채점, 에세이 게이트 판정, 결과 분석 비즈니스 로직.
순수 Python 함수로 구성: UI 코드, 전역 상태 변경 없음.
"""

import math
from collections import defaultdict
from typing import Dict, List, Optional, Tuple

from cma_mock_cbt.models.exam_config import ExamConfig
from cma_mock_cbt.models.question_model import MCQQuestion
from cma_mock_cbt.models.session_state import MCQAnswer, SessionStatus


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def calculate_score(
    questions: List[MCQQuestion],
    answers: Dict[str, MCQAnswer],
) -> Tuple[int, int]:
    """
    객관식 답안을 채점한다.

    정답 판정 기준: answers[q.id].selected == q.correct_index
    응답하지 않은 문제(키 없음 또는 selected=None)는 오답으로 처리.
    플래그는 채점에 영향을 주지 않는다.

    Args:
        questions: 채점 대상 MCQQuestion 리스트 (출제된 전체).
        answers:   {question.id: MCQAnswer}

    Returns:
        (정답 수, 백분율 점수). 백분율은 정수로 반올림(0.5 올림).
        questions가 빈 리스트이면 (0, 0).
    """
    if not questions:
        return 0, 0

    correct_count = sum(
        1
        for q in questions
        if (a := answers.get(q.id)) is not None and a.selected == q.correct_index
    )

    return correct_count, _round_half_up(correct_count / len(questions) * 100)


def is_essay_unlocked(config: ExamConfig, mcq_score: Optional[int]) -> bool:
    """
    에세이 섹션 진입 가능 여부.

    - 에세이가 없는 시험: False
    - CHALLENGE: mcq_score >= mcq_pass_threshold
    - 그 외: True
    """
    if config.essay_count == 0:
        return False
    if config.is_gated:
        return mcq_score is not None and mcq_score >= (config.mcq_pass_threshold or 0.0)
    return True


def next_status_after_mcq(config: ExamConfig, mcq_score: int) -> SessionStatus:
    """객관식 섹션 종료 후 이동할 단계."""
    if config.essay_count == 0:
        return SessionStatus.COMPLETED
    if is_essay_unlocked(config, mcq_score):
        return SessionStatus.ESSAY_IN_PROGRESS
    return SessionStatus.ESSAY_LOCKED


def section_summary(
    question_ids: List[str],
    answers: Dict[str, MCQAnswer],
) -> Dict[str, int]:
    """
    섹션 종료 전 요약 (응답 / 미응답 / 플래그 수).

    Returns:
        {"total": int, "answered": int, "unanswered": int, "flagged": int}
    """
    answered = 0
    flagged = 0
    for qid in question_ids:
        a = answers.get(qid)
        if a is None:
            continue
        if a.selected is not None:
            answered += 1
        if a.flagged:
            flagged += 1
    total = len(question_ids)
    return {"total": total, "answered": answered, "unanswered": total - answered, "flagged": flagged}


def essay_summary(question_ids: List[str], answers: Dict[str, str]) -> Dict[str, int]:
    answered = sum(1 for qid in question_ids if answers.get(qid, "").strip())
    total = len(question_ids)
    return {"total": total, "answered": answered, "unanswered": total - answered, "flagged": 0}


def word_count(text: str) -> int:
    return len(text.split()) if text else 0


def get_incorrect_questions(
    questions: List[MCQQuestion],
    answers: Dict[str, MCQAnswer],
) -> List[MCQQuestion]:
    """
    오답 문제 리스트를 반환한다 (오답 노트용).

    오답 판정 기준:
    - 선택한 보기가 정답과 다른 경우
    - 아예 응답하지 않은 경우 (미응답 포함)

    Returns:
        오답 MCQQuestion 리스트. 출제 순서 유지.
    """
    incorrect: List[MCQQuestion] = []
    for q in questions:
        a = answers.get(q.id)
        if a is None or a.selected != q.correct_index:
            incorrect.append(q)
    return incorrect


def calculate_section_scores(
    questions: List[MCQQuestion],
    answers: Dict[str, MCQAnswer],
) -> List[Dict[str, object]]:
    """
    출제 영역(section)별 점수를 계산하여 반환한다.

    Returns:
        [{"section": str, "total": int, "correct": int,
          "incorrect": int, "unanswered": int, "score": float}, ...]
        영역명 기준 정렬.
    """
    buckets: Dict[str, Dict[str, int]] = defaultdict(
        lambda: {"total": 0, "correct": 0, "incorrect": 0, "unanswered": 0}
    )

    for q in questions:
        sec = q.section or "General"
        buckets[sec]["total"] += 1

        a = answers.get(q.id)
        if a is None or a.selected is None:
            buckets[sec]["unanswered"] += 1
        elif a.selected == q.correct_index:
            buckets[sec]["correct"] += 1
        else:
            buckets[sec]["incorrect"] += 1

    result = []
    for sec in sorted(buckets):
        b = buckets[sec]
        score = round(b["correct"] / b["total"] * 100, 1) if b["total"] else 0.0
        result.append({"section": sec, **b, "score": score})
    return result
