"""
services/payloads.py

백엔드 행 / LLM JSON → 문제 모델 디코딩.

행의 모양은 출처별로 다르다 (문제은행 테이블, AI 캐시의 question_data JSON,
에세이 CSV 가져오기 컬럼 등). 추측 파싱 대신 출처(kind)별로 명시적으로 디코딩한다.
디코딩 실패는 None 반환 + 경고 로그: 호출자가 해당 행만 건너뛴다.
"""

import json
import logging
import re
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from cma_mock_cbt.models.question_model import (
    OPTION_LETTERS,
    EssayQuestion,
    MCQQuestion,
    QuestionSourceKind,
)

logger = logging.getLogger(__name__)


def _letter_to_index(value: Any) -> Optional[int]:
    """'B' / 'b' / 'option_b' / 1 → 1."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if not isinstance(value, str):
        return None
    text = value.strip().upper()
    if text.startswith("OPTION_"):
        text = text[len("OPTION_"):]
    if text in OPTION_LETTERS:
        return OPTION_LETTERS.index(text)
    if text.isdigit():
        return int(text)
    return None


def _load_json_field(value: Any) -> Any:
    if isinstance(value, str):
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            return None
    return value


def _mcq_fields(data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """option_a..option_d 컬럼 또는 options 리스트 둘 다 허용."""
    options = data.get("options")
    if not isinstance(options, list):
        options = [data.get(f"option_{letter.lower()}") for letter in OPTION_LETTERS]
    if any(o is None for o in options):
        return None

    if "correct_index" in data:
        correct = _letter_to_index(data.get("correct_index"))
    else:
        correct = _letter_to_index(data.get("correct_answer"))
    if correct is None:
        return None

    return {
        "question_text": str(data.get("question_text") or "").strip(),
        "options": [str(o).strip() for o in options],
        "correct_index": correct,
        "explanation": data.get("explanation") or None,
    }


def decode_bank_mcq(row: Dict[str, Any], default_part: str = "Part 1") -> Optional[MCQQuestion]:
    """mcq_questions 테이블 행 → MCQQuestion (source=real)."""
    return _build_mcq(row, row, "real", default_part)


def decode_cached_mcq(row: Dict[str, Any], default_part: str = "Part 1") -> Optional[MCQQuestion]:
    """ai_question_cache 행 → MCQQuestion. 본문은 question_data(JSON 문자열 또는 dict)에 있다."""
    payload = _load_json_field(row.get("question_data"))
    if not isinstance(payload, dict):
        logger.warning(f"AI 캐시 행 {row.get('id')!r}: question_data 형식 오류")
        return None
    return _build_mcq(row, payload, "ai_generated", default_part)


def decode_generated_mcq(
    item: Dict[str, Any],
    question_id: str,
    part: str,
) -> Optional[MCQQuestion]:
    """LLM 생성 JSON 항목 → MCQQuestion (source=ai_generated)."""
    meta = {"id": question_id, "part": part, **{k: item.get(k) for k in ("section", "difficulty")}}
    return _build_mcq(meta, item, "ai_generated", part)


def _build_mcq(
    meta: Dict[str, Any],
    body: Dict[str, Any],
    source: QuestionSourceKind,
    default_part: str,
) -> Optional[MCQQuestion]:
    fields = _mcq_fields(body)
    if fields is None:
        logger.warning(f"MCQ {meta.get('id')!r}: 보기/정답 필드 누락")
        return None
    try:
        return MCQQuestion(
            id=str(meta.get("id")),
            part=meta.get("part") or default_part,
            section=meta.get("section") or body.get("section") or "General",
            difficulty=meta.get("difficulty") or body.get("difficulty") or "Medium",
            source=source,
            **fields,
        )
    except (ValidationError, TypeError) as e:
        logger.warning(f"MCQ {meta.get('id')!r}: MCQQuestion 생성 실패: {e}")
        return None


def split_requirements(value: Any) -> List[str]:
    """requirements/tasks 값 → 문자열 리스트. JSON 배열, 줄바꿈, '1.' 번호 목록 모두 허용."""
    parsed = _load_json_field(value)
    if isinstance(parsed, list):
        return [str(v).strip() for v in parsed if str(v).strip()]
    if not isinstance(value, str) or not value.strip():
        return []
    text = value.strip()
    if "\n" in text:
        parts = text.split("\n")
    elif re.match(r"1[.)]\s", text):
        # 한 줄 번호 목록: "1. ... 2. ..."
        parts = re.split(r"\s(?=\d+[.)]\s)", text)
    else:
        parts = [text]
    return [re.sub(r"^\d+[.)]\s*", "", p).strip() for p in parts if p.strip()]


def decode_essay(row: Dict[str, Any], default_part: str = "Part 1") -> Optional[EssayQuestion]:
    """essay_questions 행 → EssayQuestion. 가져오기 경로마다 다른 컬럼명을 허용."""
    scenario = row.get("scenario_text") or row.get("question_text") or row.get("scenario") or ""
    requirements = split_requirements(row.get("requirements") or row.get("tasks"))
    if not requirements:
        requirements = ["Analyze the scenario and provide your response."]
    try:
        return EssayQuestion(
            id=str(row.get("id")),
            scenario_text=str(scenario).strip(),
            requirements=requirements,
            guidance=row.get("guidance") or row.get("answer_guidance") or None,
            part=row.get("part") or default_part,
            topic=row.get("topic") or row.get("section") or "General",
            difficulty=row.get("difficulty") or "Medium",
            time_allocation_minutes=int(row.get("time_allocation_minutes") or 30),
            source=row.get("source") if row.get("source") in ("real", "ai_generated") else "real",
        )
    except (ValidationError, TypeError, ValueError) as e:
        logger.warning(f"에세이 {row.get('id')!r}: EssayQuestion 생성 실패: {e}")
        return None


def encode_mcq_row(question: MCQQuestion) -> Dict[str, Any]:
    """MCQQuestion → mcq_questions 테이블 행."""
    row = {
        "id": question.id,
        "question_text": question.question_text,
        "correct_answer": question.correct_letter,
        "explanation": question.explanation,
        "part": question.part,
        "section": question.section,
        "difficulty": question.difficulty,
    }
    for letter, option in zip(OPTION_LETTERS, question.options):
        row[f"option_{letter.lower()}"] = option
    return row


def encode_essay_row(essay: EssayQuestion) -> Dict[str, Any]:
    """EssayQuestion → essay_questions 테이블 행."""
    return {
        "id": essay.id,
        "scenario_text": essay.scenario_text,
        "requirements": json.dumps(essay.requirements, ensure_ascii=False),
        "guidance": essay.guidance,
        "part": essay.part,
        "topic": essay.topic,
        "difficulty": essay.difficulty,
        "time_allocation_minutes": essay.time_allocation_minutes,
    }
