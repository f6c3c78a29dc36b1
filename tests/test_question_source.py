import random

import pytest

from cma_mock_cbt.services.data_client import InMemoryDataClient
from cma_mock_cbt.services.question_source import QuestionSource, fallback_essay, placeholder_mcq
from tests.fakes import FailingDataClient, FakeGenerator, bank_rows, cache_rows, essay_rows


def _sources(questions):
    out = {}
    for q in questions:
        out[q.source] = out.get(q.source, 0) + 1
    return out


class TestFetchMcqs:
    @pytest.mark.parametrize("count,ratio", [(100, 0.7), (10, 0.7), (7, 0.5), (50, 1.0), (5, 0.0)])
    def test_length_and_unique_ids(self, source, count, ratio):
        questions = source.fetch_mcqs(count, ratio)
        assert len(questions) == count
        assert len({q.id for q in questions}) == count

    def test_bank_share_is_ceiling_of_ratio(self, source):
        questions = source.fetch_mcqs(10, 0.7)
        counts = _sources(questions)
        assert counts["real"] == 7
        assert counts["ai_generated"] == 3

    def test_bank_shortage_filled_from_cache_then_placeholders(self):
        client = InMemoryDataClient({"mcq_questions": bank_rows(3), "ai_question_cache": cache_rows(2)})
        questions = QuestionSource(client, rng=random.Random(1)).fetch_mcqs(10, 0.7)
        counts = _sources(questions)
        assert counts == {"real": 3, "ai_generated": 2, "placeholder": 5}

    def test_used_cache_rows_are_skipped(self):
        client = InMemoryDataClient({"ai_question_cache": cache_rows(5, used=True)})
        questions = QuestionSource(client).fetch_mcqs(4, 0.0)
        assert _sources(questions) == {"placeholder": 4}

    def test_other_part_rows_are_ignored(self):
        client = InMemoryDataClient({"mcq_questions": bank_rows(10, part="Part 2")})
        questions = QuestionSource(client).fetch_mcqs(5, 1.0, part="Part 1")
        assert all(q.source == "placeholder" for q in questions)

    def test_generator_fills_before_placeholders(self):
        client = InMemoryDataClient({"mcq_questions": bank_rows(2)})
        generator = FakeGenerator()
        questions = QuestionSource(client, generator=generator).fetch_mcqs(6, 0.5)
        assert _sources(questions) == {"real": 2, "ai_generated": 4}
        assert generator.requested == [4]

    def test_generator_request_is_capped(self):
        generator = FakeGenerator()
        questions = QuestionSource(InMemoryDataClient(), generator=generator, max_generated=3).fetch_mcqs(8, 0.0)
        assert generator.requested == [3]
        assert _sources(questions) == {"ai_generated": 3, "placeholder": 5}

    def test_with_generator_keeps_backend(self, data_client):
        base = QuestionSource(data_client)
        generator = FakeGenerator()
        derived = base.with_generator(generator)
        assert len(derived.fetch_mcqs(10, 0.7)) == 10
        assert generator.requested == []  # 캐시로 충분

    def test_backend_failure_degrades_to_placeholders(self):
        questions = QuestionSource(FailingDataClient()).fetch_mcqs(12, 0.7)
        assert len(questions) == 12
        assert _sources(questions) == {"placeholder": 12}

    def test_duplicate_ids_across_sources_are_dropped(self):
        client = InMemoryDataClient(
            {"mcq_questions": bank_rows(2, prefix="dup"), "ai_question_cache": cache_rows(2, prefix="dup")}
        )
        questions = QuestionSource(client).fetch_mcqs(4, 0.5)
        assert len({q.id for q in questions}) == 4

    def test_malformed_rows_are_skipped(self):
        rows = bank_rows(3)
        rows[0]["option_c"] = None
        rows[1]["correct_answer"] = "E"
        client = InMemoryDataClient({"mcq_questions": rows})
        questions = QuestionSource(client).fetch_mcqs(3, 1.0)
        assert _sources(questions) == {"real": 1, "placeholder": 2}

    def test_zero_count(self, source):
        assert source.fetch_mcqs(0, 0.7) == []


class TestFetchEssays:
    def test_sample_without_replacement(self, source):
        essays = source.fetch_essays(2)
        assert len(essays) == 2
        assert len({e.id for e in essays}) == 2
        assert all(e.requirements == ["Requirement one", "Requirement two"] for e in essays)

    def test_padding_with_fallback_essays(self):
        client = InMemoryDataClient({"essay_questions": essay_rows(1)})
        essays = QuestionSource(client).fetch_essays(3)
        assert len(essays) == 3
        assert [e.source for e in essays].count("placeholder") == 2
        assert len({e.id for e in essays}) == 3

    def test_part_matching_is_normalized(self):
        client = InMemoryDataClient({"essay_questions": essay_rows(2, part="Part1") + essay_rows(0)})
        essays = QuestionSource(client).fetch_essays(2, part="Part 1")
        assert all(e.source == "real" for e in essays)

    def test_other_part_is_excluded(self):
        client = InMemoryDataClient({"essay_questions": essay_rows(3, part="Part 2")})
        essays = QuestionSource(client).fetch_essays(2, part="Part 1")
        assert all(e.source == "placeholder" for e in essays)

    def test_backend_failure(self):
        essays = QuestionSource(FailingDataClient()).fetch_essays(2)
        assert [e.id for e in essays] == ["placeholder-essay-1", "placeholder-essay-2"]


class TestPlaceholders:
    def test_placeholder_ids_are_unique(self):
        ids = {placeholder_mcq(i).id for i in range(20)}
        assert len(ids) == 20

    def test_placeholder_is_valid_question(self):
        q = placeholder_mcq(0, "Part 2")
        assert q.part == "Part 2"
        assert len(q.options) == 4
        assert q.source == "placeholder"

    def test_fallback_essays_rotate_templates(self):
        assert fallback_essay(0).topic != fallback_essay(1).topic
        assert fallback_essay(0).topic == fallback_essay(2).topic
