import json

import pytest

from cma_mock_cbt.services.payloads import (
    decode_bank_mcq,
    decode_cached_mcq,
    decode_essay,
    decode_generated_mcq,
    encode_essay_row,
    encode_mcq_row,
    split_requirements,
)
from tests.fakes import bank_rows, cache_rows, essay_rows


class TestMcqDecoding:
    def test_bank_row(self):
        q = decode_bank_mcq(bank_rows(1)[0])
        assert q.id == "bank-0"
        assert q.options == ["alpha", "beta", "gamma", "delta"]
        assert q.correct_index == 1
        assert q.correct_letter == "B"
        assert q.section == "Cost Management"
        assert q.source == "real"

    def test_cache_row_with_json_string(self):
        row = cache_rows(1)[0]
        row["question_data"] = json.dumps(row["question_data"])
        q = decode_cached_mcq(row)
        assert q.source == "ai_generated"
        assert q.correct_index == 2
        assert q.question_text == "Cached question 0"

    def test_cache_row_with_broken_payload(self):
        row = cache_rows(1)[0]
        row["question_data"] = "{not json"
        assert decode_cached_mcq(row) is None

    @pytest.mark.parametrize("answer,expected", [("b", 1), ("option_d", 3), (0, 0), ("2", 2)])
    def test_answer_formats(self, answer, expected):
        row = bank_rows(1)[0]
        row["correct_answer"] = answer
        assert decode_bank_mcq(row).correct_index == expected

    @pytest.mark.parametrize("answer", ["E", "", None, True, 7])
    def test_bad_answer_is_rejected(self, answer):
        row = bank_rows(1)[0]
        row["correct_answer"] = answer
        assert decode_bank_mcq(row) is None

    def test_blank_option_is_rejected(self):
        row = bank_rows(1)[0]
        row["option_b"] = "   "
        assert decode_bank_mcq(row) is None

    def test_missing_part_uses_default(self):
        row = bank_rows(1)[0]
        row["part"] = None
        assert decode_bank_mcq(row, default_part="Part 2").part == "Part 2"

    def test_generated_item(self):
        item = {
            "question_text": "What is ROI?",
            "option_a": "a",
            "option_b": "b",
            "option_c": "c",
            "option_d": "d",
            "correct_answer": "D",
            "section": "Performance Management",
            "difficulty": "Hard",
        }
        q = decode_generated_mcq(item, "gen-1", "Part 1")
        assert (q.id, q.correct_index, q.section, q.difficulty) == ("gen-1", 3, "Performance Management", "Hard")


class TestEssayDecoding:
    def test_json_requirements(self):
        e = decode_essay(essay_rows(1)[0])
        assert e.requirements == ["Requirement one", "Requirement two"]
        assert e.topic == "Budgeting"

    def test_alternate_columns(self):
        row = {"id": "e1", "scenario": "A firm...", "tasks": "Do X\nDo Y", "answer_guidance": "X then Y"}
        e = decode_essay(row)
        assert e.scenario_text == "A firm..."
        assert e.requirements == ["Do X", "Do Y"]
        assert e.guidance == "X then Y"

    def test_missing_requirements_get_default_task(self):
        e = decode_essay({"id": "e2", "scenario_text": "Only a scenario"})
        assert len(e.requirements) == 1

    def test_empty_scenario_is_rejected(self):
        assert decode_essay({"id": "e3", "scenario_text": "  ", "requirements": "x"}) is None

    @pytest.mark.parametrize(
        "value,expected",
        [
            ('["a", " b "]', ["a", "b"]),
            ("1. first 2. second", ["first", "second"]),
            ("1) first\n2) second\n", ["first", "second"]),
            ("single task", ["single task"]),
            ("", []),
            (None, []),
        ],
    )
    def test_split_requirements(self, value, expected):
        assert split_requirements(value) == expected


class TestEncoding:
    def test_mcq_row_decodes_back(self):
        q = decode_bank_mcq(bank_rows(1)[0])
        row = encode_mcq_row(q)
        assert row["correct_answer"] == "B"
        assert row["option_d"] == "delta"
        assert decode_bank_mcq(row) == q

    def test_essay_row_stores_requirements_as_json(self):
        e = decode_essay(essay_rows(1)[0])
        row = encode_essay_row(e)
        assert json.loads(row["requirements"]) == e.requirements
