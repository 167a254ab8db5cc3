"""Tests for turning model output into validated question candidates."""

import json

import pytest

from examgen.generation.parser import parse_question_candidates, to_candidate
from examgen.generation.sanitizer import SanitizerError


def _item(**overrides):
    item = {
        "questionsText": "What is the SI unit of force?",
        "Options": ["Newton", "Joule", "Watt", "Pascal"],
        "correctOption": "Newton",
        "topics": ["Units"],
    }
    item.update(overrides)
    return item


def test_parse_valid_items():
    raw = json.dumps([_item(), _item(questionsText="What is the SI unit of energy?", correctOption="Joule")])
    candidates = parse_question_candidates(raw)
    assert len(candidates) == 2
    assert candidates[0].correct_option == "Newton"
    assert candidates[1].correct_option == "Joule"
    assert candidates[0].topics == ["Units"]


def test_alternate_keys_accepted():
    item = {
        "question": "Which gas do plants absorb?",
        "options": ["Oxygen", "Carbon dioxide", "Nitrogen", "Helium"],
        "answer": "Carbon dioxide",
    }
    c = to_candidate(item)
    assert c is not None
    assert c.question_text == "Which gas do plants absorb?"
    assert c.correct_option == "Carbon dioxide"


@pytest.mark.parametrize("letter", ["B", "b)", "Option B"])
def test_letter_answer_mapped_to_option(letter):
    c = to_candidate(_item(correctOption=letter))
    assert c is not None
    assert c.correct_option == "Joule"


def test_missing_topics_derived_from_text():
    c = to_candidate(_item(topics=[], questionsText="Photosynthesis converts light energy in chloroplasts"))
    assert c is not None
    assert c.topics
    assert "photosynthesis" in c.topics


@pytest.mark.parametrize(
    "overrides",
    [
        {"Options": ["Newton", "Joule", "Watt"]},
        {"Options": ["Newton", "Joule", "Watt", "Pascal", "Tesla"]},
        {"correctOption": "Ampere"},
        {"questionsText": "   "},
        {"Options": "Newton, Joule, Watt, Pascal"},
    ],
)
def test_invalid_items_dropped(overrides):
    raw = json.dumps([_item(**overrides), _item()])
    candidates = parse_question_candidates(raw)
    assert len(candidates) == 1
    assert candidates[0].question_text == "What is the SI unit of force?"


def test_non_object_items_dropped():
    raw = json.dumps(["just a string", 42, _item()])
    assert len(parse_question_candidates(raw)) == 1


def test_limit_cuts_surplus():
    raw = json.dumps([_item(questionsText=f"Question number {i}?") for i in range(5)])
    candidates = parse_question_candidates(raw, limit=3)
    assert [c.question_text for c in candidates] == [f"Question number {i}?" for i in range(3)]


def test_options_whitespace_normalized():
    c = to_candidate(_item(Options=[" Newton ", "Joule", "Watt", "Pascal"], correctOption="Newton "))
    assert c is not None
    assert c.options[0] == "Newton"
    assert c.correct_option == "Newton"


def test_unparseable_output_raises():
    with pytest.raises(SanitizerError):
        parse_question_candidates("The model refused to answer.")
