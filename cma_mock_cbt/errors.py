"""
errors.py

시험 흐름에서 사용하는 도메인 예외.
API 계층(api/routes.py)에서 HTTP 상태 코드로 변환된다.
"""


class ExamError(Exception):
    """시험 흐름 예외의 공통 부모."""


class InvalidExamConfigError(ExamError):
    """카탈로그에 없는 시험 키 또는 잘못된 설정."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"invalid exam configuration: {key!r}")


class ExamPhaseError(ExamError):
    """현재 단계(status)에서 허용되지 않는 동작."""


class UnknownQuestionError(ExamError):
    """이번 세션에 배포되지 않은 문제 ID."""

    def __init__(self, question_id: str):
        self.question_id = question_id
        super().__init__(f"question {question_id!r} is not part of this session")


class QuestionShortfallError(ExamError):
    """출제된 문항 수가 설정과 다름 (시험 시작 거부)."""


class DataClientError(Exception):
    """데이터 백엔드 호출 실패 (네트워크/HTTP/응답 형식)."""
