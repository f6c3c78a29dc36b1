"""
services/question_generator.py

LLM(OpenAI) 연동 서비스.
Public API:
  - make_client(api_key) -> Optional[OpenAI]
  - QuestionGenerator.generate_mcqs(count, part) -> List[MCQQuestion]
  - QuestionGenerator.explain_mcq(question, selected_index) -> Optional[str]
  - call_openai(...) / clean_json_response(...) : 공통 호출/응답 정리 유틸

설계 원칙:
- 키가 없거나 호출이 최종 실패하면 빈 결과 반환: 시험 진행을 막지 않는다
- Rate Limit / 일시적 API 오류는 지수 백오프 재시도
"""

import json
import logging
import re
import time
import uuid
from typing import List, Optional

from openai import APIError, OpenAI, RateLimitError

import config
from cma_mock_cbt.models.question_model import OPTION_LETTERS, MCQQuestion
from cma_mock_cbt.services.payloads import decode_generated_mcq

logger = logging.getLogger(__name__)

# ── 상수 ─────────────────────────────────────────────────────────────────────
_MAX_API_RETRIES = 3
_BACKOFF_BASE = 1.0
_RATE_LIMIT_MAX_RETRIES = 5
_RATE_LIMIT_BACKOFF_BASE = 2.0
_GENERATION_BATCH = 10       # 호출 1회당 생성 문항 수


def make_client(api_key: str) -> Optional[OpenAI]:
    """API 키로 OpenAI 클라이언트를 생성."""
    if not api_key:
        return None
    try:
        return OpenAI(api_key=api_key)
    except Exception as e:
        logger.error(f"OpenAI 클라이언트 초기화 실패: {e}")
        return None


class QuestionGenerator:
    """CMA 문제 생성 + AI 튜터 해설."""

    def __init__(self, client: OpenAI, model: str = ""):
        self._client = client
        self._model = model or config.MODEL_NAME

    def generate_mcqs(self, count: int, part: str = "Part 1") -> List[MCQQuestion]:
        """
        count개까지 객관식 문제를 생성한다. 실패한 배치는 건너뛰므로
        반환 개수가 count보다 적을 수 있다 (호출자가 플레이스홀더로 보충).
        """
        questions: List[MCQQuestion] = []
        while len(questions) < count:
            batch = min(_GENERATION_BATCH, count - len(questions))
            raw = call_openai(
                _build_generation_prompt(part),
                f"Generate {batch} CMA {part} multiple-choice questions.",
                self._client,
                model=self._model,
                temperature=0.7,
            )
            items = parse_json_items(raw, "questions")
            if not items:
                logger.warning(f"문제 생성 실패: {batch}개 배치 중단")
                break
            for item in items[:batch]:
                q = decode_generated_mcq(item, f"gen-{uuid.uuid4().hex[:12]}", part)
                if q is not None:
                    questions.append(q)
        logger.info(f"generate_mcqs: {len(questions)}/{count}개 생성")
        return questions[:count]

    def explain_mcq(self, question: MCQQuestion, selected_index: Optional[int]) -> Optional[str]:
        """응시자의 선택과 정답을 비교해 해설을 만든다. 실패 시 None."""
        options = "\n".join(
            f"{letter}. {text}" for letter, text in zip(OPTION_LETTERS, question.options)
        )
        chosen = OPTION_LETTERS[selected_index] if selected_index is not None else "no answer"
        user_input = (
            f"Question ({question.section}):\n{question.question_text}\n\n{options}\n\n"
            f"Correct answer: {question.correct_letter}\n"
            f"Candidate answer: {chosen}\n"
        )
        raw = call_openai(
            _EXPLAIN_SYSTEM_PROMPT,
            user_input,
            self._client,
            model=self._model,
            json_mode=False,
            max_tokens=800,
        )
        return raw.strip() if raw else None


_EXPLAIN_SYSTEM_PROMPT = (
    "You are a CMA exam tutor. Explain concisely why the correct option is right "
    "and, if the candidate chose differently, why their option is wrong. "
    "Reference the relevant CMA concept. Plain text, at most 150 words."
)


def _build_generation_prompt(part: str) -> str:
    return (
        f"You write IMA CMA {part} exam practice questions.\n"
        "\n"
        "[Output format]\n"
        'Respond with a JSON object only: {"questions": [...]}\n'
        "\n"
        "[Fields of each question]\n"
        "{\n"
        '  "question_text": (str) the stem,\n'
        '  "option_a" .. "option_d": (str) four options,\n'
        '  "correct_answer": (str) one of "A", "B", "C", "D",\n'
        '  "explanation": (str) why the answer is correct,\n'
        '  "section": (str) CMA content area (e.g. "Cost Management"),\n'
        '  "difficulty": (str) "Easy" | "Medium" | "Hard"\n'
        "}\n"
        "\n"
        "[Rules]\n"
        "1. Exactly one option is correct.\n"
        "2. Do not number the options inside their text.\n"
        "3. Cover different content areas across the batch."
    )


def parse_json_items(raw: Optional[str], key: str) -> List[dict]:
    cleaned = clean_json_response(raw or "")
    if not cleaned:
        return []
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError:
        return []
    if isinstance(data, dict):
        data = data.get(key, data.get("items", []))
    if not isinstance(data, list):
        return []
    return [item for item in data if isinstance(item, dict)]


def clean_json_response(response_text: str) -> str:
    """LLM 응답에서 순수 JSON을 추출."""
    if not response_text:
        return ""

    text = re.sub(r"```(?:json)?\s*", "", response_text, flags=re.IGNORECASE)
    text = re.sub(r"```", "", text)
    text = text.strip()

    if text.startswith("{") or text.startswith("["):
        return text

    match = re.search(r"[{[].*[}\]]", text, re.DOTALL)
    if match:
        return match.group(0).strip()

    return ""


# ══════════════════════════════════════════════════════════════════════════════
# OpenAI API 호출
# ══════════════════════════════════════════════════════════════════════════════

_TRANSIENT_MARKERS = ("timeout", "connection", "unavailable")
_TRANSIENT_STATUS = (500, 502, 503, 504)


def _retry_delay(error: Exception, attempt: int) -> Optional[float]:
    """
    재시도 대기 시간(초). 재시도하지 않을 오류면 None.

    - RateLimitError : 2, 4, 8, 16초 (최대 _RATE_LIMIT_MAX_RETRIES회 시도)
    - 일시적 APIError: 1, 2초       (최대 _MAX_API_RETRIES회 시도)
    """
    if isinstance(error, RateLimitError):
        if attempt >= _RATE_LIMIT_MAX_RETRIES:
            return None
        return _RATE_LIMIT_BACKOFF_BASE * (2 ** (attempt - 1))
    if isinstance(error, APIError):
        transient = getattr(error, "status_code", None) in _TRANSIENT_STATUS or any(
            marker in str(error).lower() for marker in _TRANSIENT_MARKERS
        )
        if transient and attempt < _MAX_API_RETRIES:
            return _BACKOFF_BASE * (2 ** (attempt - 1))
    return None


def call_openai(
    system_prompt: str,
    user_content: "str | list",
    client: Optional[OpenAI] = None,
    model: str = "",
    temperature: float = 0.1,
    json_mode: bool = True,
    max_tokens: int = 16384,
    sleep=time.sleep,
) -> Optional[str]:
    """
    Chat Completions 호출. 텍스트(str)와 비전(list) 입력 모두 지원.
    재시도 가능한 오류는 _retry_delay 규칙으로 기다렸다 다시 호출하고,
    최종 실패하면 None (호출자가 빈 결과로 처리).
    """
    if client is None:
        return None

    request = {
        "model": model or config.MODEL_NAME,
        "messages": [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_content},
        ],
        "temperature": temperature,
        "max_tokens": max_tokens,
    }
    if json_mode:
        request["response_format"] = {"type": "json_object"}

    attempt = 0
    while True:
        attempt += 1
        try:
            response = client.chat.completions.create(**request)
            return response.choices[0].message.content
        except Exception as e:
            delay = _retry_delay(e, attempt)
            if delay is None:
                logger.error(f"OpenAI 호출 최종 실패 ({attempt}회 시도): {type(e).__name__}: {e}")
                return None
            logger.warning(f"{type(e).__name__}, {delay:.1f}초 후 재시도 ({attempt}회차)")
            sleep(delay)
