from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

QuestionSourceKind = Literal["real", "ai_generated", "placeholder"]

OPTION_LETTERS = ("A", "B", "C", "D")


class MCQQuestion(BaseModel):
    """
    CMA 객관식 문제 모델
    한 세션에 출제된 뒤에는 변경되지 않는다.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(
        ...,
        min_length=1,
        description="문제 고유 ID (문제은행 / AI 캐시 / 플레이스홀더)"
    )
    question_text: str = Field(
        ...,
        min_length=1,
        description="문제 본문"
    )
    options: List[str] = Field(
        ...,
        description="보기 4개 (A, B, C, D 순서)"
    )
    correct_index: int = Field(
        ...,
        description="정답 보기 인덱스 (0 = A)"
    )
    explanation: Optional[str] = Field(
        None,
        description="해설 (없으면 None)"
    )
    part: str = Field(
        default="Part 1",
        description="CMA 파트"
    )
    section: str = Field(
        default="General",
        description="출제 영역 (예: Cost Management)"
    )
    difficulty: str = Field(default="Medium")
    source: QuestionSourceKind = Field(default="real")

    @field_validator("options")
    @classmethod
    def validate_options_length(cls, v: List[str]) -> List[str]:
        """
        검증 로직 1: 보기는 정확히 4개, 빈 보기 없음.
        """
        if len(v) != len(OPTION_LETTERS):
            raise ValueError("보기(options)는 정확히 4개여야 합니다.")
        if any(not str(opt).strip() for opt in v):
            raise ValueError("빈 보기가 포함되어 있습니다.")
        return v

    @model_validator(mode="after")
    def validate_correct_index(self) -> "MCQQuestion":
        """
        검증 로직 2: 정답 인덱스는 보기 범위 안에 있어야 한다.
        """
        if not 0 <= self.correct_index < len(self.options):
            raise ValueError(f"정답 인덱스({self.correct_index})가 보기 범위를 벗어났습니다.")
        return self

    @property
    def correct_letter(self) -> str:
        return OPTION_LETTERS[self.correct_index]

    def public_dict(self) -> dict:
        """시험 진행 중 클라이언트에 내려줄 형태 (정답/해설 제외)."""
        return self.model_dump(exclude={"correct_index", "explanation"})


class EssayQuestion(BaseModel):
    """
    CMA 에세이(서술형) 문제 모델
    시나리오 + 요구사항(task) 목록. 자동 채점하지 않는다.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    scenario_text: str = Field(
        ...,
        min_length=1,
        description="시나리오 본문"
    )
    requirements: List[str] = Field(
        ...,
        description="요구사항(task) 목록"
    )
    guidance: Optional[str] = Field(
        None,
        description="채점 가이드 (멘토 리뷰용)"
    )
    part: str = Field(default="Part 1")
    topic: str = Field(default="General")
    difficulty: str = Field(default="Medium")
    time_allocation_minutes: int = Field(default=30, gt=0)
    source: QuestionSourceKind = Field(default="real")

    @field_validator("requirements")
    @classmethod
    def validate_requirements(cls, v: List[str]) -> List[str]:
        cleaned = [r.strip() for r in v if r and r.strip()]
        if not cleaned:
            raise ValueError("요구사항(requirements)은 최소 1개 이상 필요합니다.")
        return cleaned

    def public_dict(self) -> dict:
        return self.model_dump(exclude={"guidance"})
