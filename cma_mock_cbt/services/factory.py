"""
services/factory.py — 백엔드 협력 객체 묶음

FastAPI 앱과 Streamlit 앱이 같은 방식으로 조립해 쓴다.
LLM 클라이언트는 사용자(브라우저 세션)별 API 키로 요청 시점에 만든다.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

import config
from cma_mock_cbt.services.data_client import DataClient, build_data_client
from cma_mock_cbt.services.exam_session import ExamRunner, prepare_exam
from cma_mock_cbt.services.question_generator import QuestionGenerator, make_client
from cma_mock_cbt.services.question_source import QuestionSource
from cma_mock_cbt.services.session_store import SessionRecorder

logger = logging.getLogger(__name__)


@dataclass
class ExamServices:
    data_client: DataClient
    source: QuestionSource
    recorder: SessionRecorder
    default_api_key: str = field(default="", repr=False)

    def generator_for(self, api_key: str = "") -> Optional[QuestionGenerator]:
        client = make_client(api_key or self.default_api_key)
        return QuestionGenerator(client) if client is not None else None

    def prepare(self, config_key: str, user_id: str, api_key: str = "") -> ExamRunner:
        source = self.source.with_generator(self.generator_for(api_key))
        return prepare_exam(config_key, source, recorder=self.recorder, user_id=user_id)

    def close(self) -> None:
        self.recorder.flush()
        self.recorder.shutdown()
        self.data_client.close()


def build_services(data_client: Optional[DataClient] = None) -> ExamServices:
    client = data_client or build_data_client()
    logger.info(f"데이터 백엔드: {type(client).__name__}")
    return ExamServices(
        data_client=client,
        source=QuestionSource(client),
        recorder=SessionRecorder(client),
        default_api_key=config.OPENAI_API_KEY,
    )
