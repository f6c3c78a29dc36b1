import random

import pytest

import api.session as web_session
from cma_mock_cbt.services.data_client import InMemoryDataClient
from cma_mock_cbt.services.question_source import QuestionSource
from tests.fakes import FakeClock, bank_rows, cache_rows, essay_rows


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def data_client() -> InMemoryDataClient:
    client = InMemoryDataClient()
    client.seed("mcq_questions", bank_rows(120))
    client.seed("ai_question_cache", cache_rows(60))
    client.seed("essay_questions", essay_rows(5))
    return client


@pytest.fixture
def source(data_client) -> QuestionSource:
    return QuestionSource(data_client, rng=random.Random(7))


@pytest.fixture(autouse=True)
def _clear_web_sessions():
    yield
    web_session.clear_all()
