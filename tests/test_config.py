"""Tests for settings defaults and derived values."""

from examgen.config import Settings
from examgen.worker.handler import GenerationConfig


def _settings(**overrides):
    return Settings(_env_file=None, **overrides)


def test_defaults():
    s = _settings()
    assert s.question_batch_size == 50
    assert s.question_batch_delay_ms == 2000
    assert s.max_retries == 3
    assert s.question_worker_concurrency == 1
    assert s.duplicate_similarity_threshold == 0.85
    assert s.summary_topic_overlap_threshold == 0.6
    assert s.question_queue_name == "question-generation"
    assert s.active_jobs_limit == 20


def test_queue_backoff_intervals_double():
    assert _settings(queue_backoff_seconds=2, max_retries=3).queue_backoff_intervals == [2, 4, 8]


def test_model_and_key_selection():
    s = _settings(openai_api_key="sk-o", anthropic_api_key="sk-a")
    assert s.model_for("openai") == s.examgen_openai_model
    assert s.model_for("anthropic") == s.examgen_anthropic_model
    assert s.api_key_for("anthropic") == "sk-a"


def test_generation_config_from_settings():
    config = GenerationConfig.from_settings(
        _settings(question_batch_delay_ms=1500, retry_base_delay_ms=250, examgen_llm_provider="openai")
    )
    assert config.unit_size == 50
    assert config.inter_wave_delay == 1.5
    assert config.retry_base_delay == 0.25
    assert config.summary_model == "gpt-4o-mini"


def test_generation_config_no_mini_model_for_anthropic():
    config = GenerationConfig.from_settings(_settings(examgen_llm_provider="anthropic"))
    assert config.summary_model is None
