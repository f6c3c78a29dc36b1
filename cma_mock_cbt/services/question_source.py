"""
services/question_source.py

하이브리드 출제 서비스.
Public API:
  - QuestionSource.fetch_mcqs(count, hybrid_ratio, part) -> List[MCQQuestion]
  - QuestionSource.fetch_essays(count, part) -> List[EssayQuestion]

출제 규칙:
- 객관식: ceil(count * hybrid_ratio)개는 문제은행(mcq_questions)에서,
  나머지는 AI 캐시(ai_question_cache) → LLM 생성 → 플레이스홀더 순으로 채운다.
- 에세이: essay_questions 풀에서 비복원 무작위 추출 후 부족분은 기본 에세이로 채운다.
- 반환 개수는 항상 요청한 count와 같다. 백엔드 오류는 빈 풀로 취급 (로그만 남김).
"""

import logging
import math
import random
from typing import Callable, Dict, List, Optional

import config
from cma_mock_cbt.errors import DataClientError
from cma_mock_cbt.models.question_model import EssayQuestion, MCQQuestion
from cma_mock_cbt.services.data_client import DataClient
from cma_mock_cbt.services.payloads import decode_bank_mcq, decode_cached_mcq, decode_essay
from cma_mock_cbt.services.question_generator import QuestionGenerator

logger = logging.getLogger(__name__)

MCQ_TABLE = "mcq_questions"
AI_CACHE_TABLE = "ai_question_cache"
ESSAY_TABLE = "essay_questions"


class QuestionSource:
    """
    Args:
        data_client: 문제은행이 있는 데이터 백엔드
        generator:   LLM 문제 생성기 (없으면 AI 캐시 부족분은 바로 플레이스홀더)
        rng:         무작위 추출/셔플용 (테스트에서 고정 가능)
    """

    def __init__(
        self,
        data_client: DataClient,
        generator: Optional[QuestionGenerator] = None,
        rng: Optional[random.Random] = None,
        max_generated: int = config.MAX_GENERATED_PER_EXAM,
    ):
        self._client = data_client
        self._generator = generator
        self._rng = rng or random.Random()
        self._max_generated = max_generated

    def with_generator(self, generator: Optional[QuestionGenerator]) -> "QuestionSource":
        """같은 백엔드를 쓰되 생성기만 바꾼 인스턴스."""
        return QuestionSource(self._client, generator, self._rng, self._max_generated)

    # ── 객관식 ───────────────────────────────────────────────────────────────

    def fetch_mcqs(self, count: int, hybrid_ratio: float = 0.7, part: str = "Part 1") -> List[MCQQuestion]:
        if count <= 0:
            return []
        # 10 * 0.7 == 7.000000000000001
        real_count = math.ceil(round(count * hybrid_ratio, 9))
        logger.info(f"fetch_mcqs: 실제 {real_count} + 생성 {count - real_count}개 요청 ({part})")

        combined: List[MCQQuestion] = []
        seen: set = set()

        def _add(questions: List[MCQQuestion], limit: int) -> None:
            for q in questions:
                if len(combined) >= limit:
                    return
                if q.id in seen:
                    continue
                seen.add(q.id)
                combined.append(q)

        # 1) 문제은행 (실제 기출/검수 문제)
        bank = self._load_pool(MCQ_TABLE, {"part": part}, lambda r: decode_bank_mcq(r, part))
        _add(self._sample(bank, real_count), real_count)
        real_got = len(combined)

        # 2) AI 캐시: 문제은행이 부족하면 나머지 전체를 여기서 채움
        cached = self._load_pool(
            AI_CACHE_TABLE,
            {"question_type": "MCQ", "part": part, "is_used": False},
            lambda r: decode_cached_mcq(r, part),
        )
        _add(self._sample(cached, count - len(combined)), count)

        # 3) LLM 생성
        shortfall = count - len(combined)
        if shortfall > 0 and self._generator is not None:
            generated = self._generator.generate_mcqs(min(shortfall, self._max_generated), part)
            _add(generated, count)

        # 4) 플레이스홀더
        placeholder_count = count - len(combined)
        if placeholder_count > 0:
            logger.warning(f"fetch_mcqs: 문항 부족, 플레이스홀더 {placeholder_count}개로 보충")
            index = 0
            while len(combined) < count:
                q = placeholder_mcq(index, part)
                index += 1
                if q.id not in seen:
                    seen.add(q.id)
                    combined.append(q)

        logger.info(
            f"fetch_mcqs: 은행 {real_got} / 생성 {count - real_got - placeholder_count} / "
            f"플레이스홀더 {placeholder_count}"
        )
        self._rng.shuffle(combined)
        return combined

    # ── 에세이 ───────────────────────────────────────────────────────────────

    def fetch_essays(self, count: int, part: str = "Part 1") -> List[EssayQuestion]:
        if count <= 0:
            return []
        pool = self._load_pool(ESSAY_TABLE, None, lambda r: decode_essay(r, part))
        wanted = _normalize_part(part)
        pool = [e for e in pool if not e.part or _normalize_part(e.part) == wanted]

        essays = self._sample(pool, count)
        if len(essays) < count:
            logger.warning(f"fetch_essays: 에세이 부족 ({len(essays)}/{count}), 기본 에세이로 보충")
            used = {e.id for e in essays}
            index = 0
            while len(essays) < count:
                essay = fallback_essay(index, part)
                index += 1
                if essay.id not in used:
                    used.add(essay.id)
                    essays.append(essay)
        return essays

    # ── 내부 ─────────────────────────────────────────────────────────────────

    def _load_pool(self, table: str, filters: Optional[Dict], decode: Callable) -> list:
        try:
            rows = self._client.select(table, filters)
        except DataClientError as e:
            logger.error(f"{table} 조회 실패, 빈 풀로 진행: {e}")
            return []
        pool = []
        for row in rows:
            item = decode(row)
            if item is not None:
                pool.append(item)
        return pool

    def _sample(self, pool: list, k: int) -> list:
        if k <= 0 or not pool:
            return []
        return self._rng.sample(pool, min(k, len(pool)))


def _normalize_part(part: str) -> str:
    """'Part 1' / 'Part1' / 'part-1' → 'part1'."""
    return "".join(ch for ch in part.lower() if ch.isalnum())


# ══════════════════════════════════════════════════════════════════════════════
# 플레이스홀더 / 기본 문제
# ══════════════════════════════════════════════════════════════════════════════

_PLACEHOLDER_SECTIONS = ["Cost Management", "Internal Controls", "Financial Reporting", "Planning & Budgeting"]

_PLACEHOLDER_MCQS = [
    (
        "Which of the following best describes the strategic advantage of Activity Based Costing (ABC) "
        "over traditional volume-based costing?",
        [
            "It reduces total overhead costs incurred",
            "It assigns costs based on resource consumption, providing accurate product margins",
            "It uses a single plantwide overhead rate for simplicity",
            "It eliminates the need for allocating fixed costs",
        ],
        1,
        "ABC traces overhead to products through the activities that consume resources.",
    ),
    (
        "Which component of internal control is concerned with the integrity and ethical values of management?",
        ["Control activities", "Monitoring activities", "Control environment", "Risk assessment"],
        2,
        "The control environment sets the tone at the top, including integrity and ethical values.",
    ),
    (
        "A flexible budget is most useful for:",
        [
            "Evaluating performance at the actual level of activity",
            "Setting the sales price of a new product",
            "Preparing the cash budget for the next year",
            "Determining the master production schedule",
        ],
        0,
        "A flexible budget restates budgeted costs at the actual activity level for variance analysis.",
    ),
    (
        "Under US GAAP, inventory is generally reported on the balance sheet at:",
        [
            "Fair value",
            "Replacement cost",
            "Net realizable value less a normal profit margin",
            "The lower of cost and net realizable value (FIFO or average cost)",
        ],
        3,
        "FIFO and average-cost inventories are measured at the lower of cost and net realizable value.",
    ),
]


def placeholder_mcq(index: int, part: str = "Part 1") -> MCQQuestion:
    """문제 풀 부족 시 사용하는 일반 문제. ID는 index 기준으로 고유."""
    text, options, correct, explanation = _PLACEHOLDER_MCQS[index % len(_PLACEHOLDER_MCQS)]
    return MCQQuestion(
        id=f"placeholder-mcq-{index + 1}",
        question_text=f"Sample CMA Question {index + 1}: {text}",
        options=options,
        correct_index=correct,
        explanation=explanation,
        part=part,
        section=_PLACEHOLDER_SECTIONS[index % len(_PLACEHOLDER_SECTIONS)],
        difficulty="Hard" if index % 3 == 0 else "Medium" if index % 2 == 0 else "Easy",
        source="placeholder",
    )


_FALLBACK_ESSAYS = [
    {
        "topic": "Foreign Currency Risk",
        "scenario_text": (
            "SCENARIO:\n\n"
            "Omega Corp is a US-based manufacturer considering expansion into the European market. "
            "The CFO is concerned about foreign currency exchange risk as the Euro has been volatile "
            "against the USD.\n\n"
            "Current exchange rate: 1 EUR = 1.08 USD\n"
            "Forward rate (1 year): 1 EUR = 1.05 USD\n"
            "Expected EUR revenue: €5 million annually"
        ),
        "requirements": [
            "Identify and explain the three types of foreign currency risk exposure "
            "(Transaction, Translation, Economic).",
            "Calculate the potential gain or loss if Omega enters a forward contract to hedge its "
            "expected €5 million revenue.",
            "Recommend a comprehensive hedging strategy using financial derivatives.",
        ],
    },
    {
        "topic": "Activity-Based Costing",
        "scenario_text": (
            "SCENARIO:\n\n"
            "You are the Controller of TechSolutions Inc. The company uses a volume-based costing system "
            "(direct labor hours) to allocate overhead. Competitors have been undercutting prices on "
            "high-volume products while TechSolutions remains cheap on low-volume specialty items.\n\n"
            "Overhead pool: $2,400,000\n"
            "Total DLH: 80,000\n"
            "Product A (high volume): 60,000 DLH, 200 setups\n"
            "Product B (low volume): 20,000 DLH, 800 setups"
        ),
        "requirements": [
            "Calculate product costs under the traditional volume-based system.",
            "Calculate product costs using Activity-Based Costing with setups as the cost driver "
            "($1,200 per setup).",
            "Explain why traditional costing distorts product costs and how ABC provides better "
            "strategic pricing information.",
        ],
    },
]


def fallback_essay(index: int, part: str = "Part 1") -> EssayQuestion:
    template = _FALLBACK_ESSAYS[index % len(_FALLBACK_ESSAYS)]
    return EssayQuestion(
        id=f"placeholder-essay-{index + 1}",
        scenario_text=template["scenario_text"],
        requirements=template["requirements"],
        part=part,
        topic=template["topic"],
        difficulty="Hard",
        time_allocation_minutes=30,
        source="placeholder",
    )
