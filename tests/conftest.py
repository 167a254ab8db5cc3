"""Pytest configuration and shared fakes: a scripted LLM and lexically distinct questions."""

import hashlib
import json
import re
import threading

import pytest

from examgen.llm.base import Completion
from examgen.schemas.models import QuestionCandidate

_COUNT_RE = re.compile(r"[Gg]enerate (\d+) multiple-choice")


def question_text(n: int) -> str:
    """Question text that no other n comes close to under fuzzy matching."""
    digest = hashlib.sha1(str(n).encode()).hexdigest()
    return "Which term matches " + " ".join(digest[i : i + 8] for i in range(0, 40, 8)) + "?"


def question_item(n: int, topics: list[str] | None = None) -> dict:
    options = [f"choice {n}-{letter}" for letter in "abcd"]
    return {
        "questionsText": question_text(n),
        "Options": options,
        "correctOption": options[1],
        "topics": topics if topics is not None else [f"topic-{n % 3}"],
    }


def questions_json(start: int, count: int) -> str:
    return json.dumps([question_item(n) for n in range(start, start + count)])


def candidate(n: int) -> QuestionCandidate:
    item = question_item(n)
    return QuestionCandidate(
        question_text=item["questionsText"],
        options=item["Options"],
        correct_option=item["correctOption"],
        topics=item["topics"],
    )


def requested_count(prompt: str) -> int:
    match = _COUNT_RE.search(prompt)
    assert match, "question prompt should state how many questions to generate"
    return int(match.group(1))


class MockLLM:
    """Answers question prompts with fresh numbered questions.

    ``script`` entries override successive generate calls: an Exception
    instance is raised, a string is returned as the raw text. Calls beyond
    the script answer normally. ``complete`` replies come from ``replies``.
    """

    def __init__(self, script=None, replies=None, short_by: int = 0):
        self.script = list(script or [])
        self.replies = list(replies or [])
        self.short_by = short_by
        self.calls: list[dict] = []
        self.prompts: list[str] = []
        self._next = 0
        self._lock = threading.Lock()

    def complete(self, prompt: str, **kwargs) -> str:
        with self._lock:
            self.prompts.append(prompt)
            reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply

    def generate(self, prompt: str, *, max_tokens: int, temperature: float, model=None) -> Completion:
        count = requested_count(prompt)
        with self._lock:
            self.calls.append({"count": count, "prompt": prompt, "max_tokens": max_tokens, "temperature": temperature, "model": model})
            step = self.script.pop(0) if self.script else None
            start = self._next
            produced = max(0, count - self.short_by)
            if step is None:
                self._next += produced
        if isinstance(step, Exception):
            raise step
        if isinstance(step, str):
            return Completion(text=step)
        return Completion(text=questions_json(start, produced), completion_tokens=produced * 100)


class RecordingSleep:
    def __init__(self):
        self.delays: list[float] = []
        self._lock = threading.Lock()

    def __call__(self, seconds: float) -> None:
        with self._lock:
            self.delays.append(seconds)


@pytest.fixture
def sleep():
    return RecordingSleep()
