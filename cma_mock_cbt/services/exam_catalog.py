"""
services/exam_catalog.py

시험 카탈로그: 빌드 시점에 고정된 시험 변형 목록과 키 조회.
"""

from typing import Dict, List

from cma_mock_cbt.errors import InvalidExamConfigError
from cma_mock_cbt.models.exam_config import ExamConfig, ExamType


def _build_catalog(*configs: ExamConfig) -> Dict[str, ExamConfig]:
    return {c.key: c for c in configs}


EXAM_CONFIGS: Dict[str, ExamConfig] = _build_catalog(
    ExamConfig(
        key="full-standard",
        test_type=ExamType.STANDARD,
        title="CMA Part 1 - Standard Simulation",
        mcq_count=100,
        essay_count=2,
        mcq_duration_minutes=180,
        essay_duration_minutes=60,
        hybrid_ratio=0.7,
    ),
    ExamConfig(
        key="full-challenge",
        test_type=ExamType.CHALLENGE,
        title="CMA Part 1 - Challenge Simulation",
        mcq_count=100,
        essay_count=2,
        mcq_duration_minutes=180,
        essay_duration_minutes=60,
        hybrid_ratio=0.7,
        mcq_pass_threshold=50.0,
    ),
    ExamConfig(
        key="mcq-practice",
        test_type=ExamType.MCQ_ONLY,
        title="MCQ Practice Session",
        mcq_count=50,
        essay_count=0,
        mcq_duration_minutes=90,
        hybrid_ratio=0.7,
    ),
    ExamConfig(
        key="essay-practice",
        test_type=ExamType.ESSAY_ONLY,
        title="Essay Practice Session",
        mcq_count=0,
        essay_count=2,
        essay_duration_minutes=60,
        hybrid_ratio=0.0,
    ),
    ExamConfig(
        key="quick-10",
        test_type=ExamType.QUICK_PRACTICE,
        title="Quick 10 MCQ Drill",
        mcq_count=10,
        essay_count=0,
        mcq_duration_minutes=15,
        hybrid_ratio=0.7,
    ),
)


def get_config(key: str) -> ExamConfig:
    """
    카탈로그 키로 시험 설정을 조회한다.

    Raises:
        InvalidExamConfigError: 알 수 없거나 형식이 잘못된 키.
                                기본 설정으로 대체하지 않는다.
    """
    if not isinstance(key, str) or not key.strip():
        raise InvalidExamConfigError(str(key))
    config = EXAM_CONFIGS.get(key.strip())
    if config is None:
        raise InvalidExamConfigError(key)
    return config


def list_configs() -> List[ExamConfig]:
    """카탈로그 정의 순서대로 반환."""
    return list(EXAM_CONFIGS.values())
