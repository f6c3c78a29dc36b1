"""
models/exam_config.py

시험 변형(variant) 설정 모델.
빌드 시점에 카탈로그(services/exam_catalog.py)에 정의되고 런타임에는 변경되지 않는다.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ExamType(str, Enum):
    STANDARD = "STANDARD"
    CHALLENGE = "CHALLENGE"
    MCQ_ONLY = "MCQ_ONLY"
    ESSAY_ONLY = "ESSAY_ONLY"
    QUICK_PRACTICE = "QUICK_PRACTICE"


class ExamConfig(BaseModel):
    """
    시험 한 종류의 형태 (문항 수, 제한 시간, 게이트 규칙).

    Attributes:
        key:                    카탈로그 키 (예: "full-standard")
        test_type:              시험 유형
        title:                  화면 표시용 제목
        part:                   CMA 파트 (예: "Part 1")
        mcq_count:              객관식 문항 수
        essay_count:            에세이 문항 수
        mcq_duration_minutes:   객관식 섹션 제한 시간 (분)
        essay_duration_minutes: 에세이 섹션 제한 시간 (분)
        hybrid_ratio:           실제 문제은행에서 가져올 비율 (0.0 ~ 1.0)
        mcq_pass_threshold:     에세이 잠금 해제 기준 점수(%). CHALLENGE 전용.
    """

    model_config = ConfigDict(frozen=True)

    key: str = Field(..., min_length=1)
    test_type: ExamType
    title: str = Field(..., min_length=1)
    part: str = Field(default="Part 1")
    mcq_count: int = Field(..., ge=0)
    essay_count: int = Field(..., ge=0)
    mcq_duration_minutes: int = Field(default=0, ge=0)
    essay_duration_minutes: int = Field(default=0, ge=0)
    hybrid_ratio: float = Field(default=0.7, ge=0.0, le=1.0)
    mcq_pass_threshold: Optional[float] = Field(default=None, ge=0.0, le=100.0)

    @model_validator(mode="after")
    def validate_shape(self) -> "ExamConfig":
        if self.mcq_count + self.essay_count <= 0:
            raise ValueError("시험에는 최소 1개 이상의 문항이 필요합니다.")
        if self.mcq_count > 0 and self.mcq_duration_minutes <= 0:
            raise ValueError("객관식 섹션의 제한 시간은 0보다 커야 합니다.")
        if self.essay_count > 0 and self.essay_duration_minutes <= 0:
            raise ValueError("에세이 섹션의 제한 시간은 0보다 커야 합니다.")
        if self.test_type == ExamType.CHALLENGE:
            if self.mcq_pass_threshold is None:
                raise ValueError("CHALLENGE 시험은 mcq_pass_threshold가 필요합니다.")
        elif self.mcq_pass_threshold is not None:
            raise ValueError("mcq_pass_threshold는 CHALLENGE 시험에서만 사용합니다.")
        return self

    @property
    def total_duration_minutes(self) -> int:
        return self.mcq_duration_minutes + self.essay_duration_minutes

    @property
    def is_gated(self) -> bool:
        return self.test_type == ExamType.CHALLENGE
