"""Tests for fact extraction and reflection output."""

from types import SimpleNamespace
from unittest.mock import patch

import pytest

from ami.exceptions import ProviderError
from ami.memory.reflection import (
    FACT_EXTRACTION_PROMPT,
    SYNTHESIS_PROMPT,
    extract_facts,
    format_reflection,
    generate,
    parse_facts,
)
from ami.memory.schema import Memory


def completion_response(text):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=text))])


class TestParseFacts:
    def test_keeps_dash_lines_only(self):
        response = "Here are the facts:\n- Uses DuckDB\n  - Tabs over spaces\n* not a fact\n-missing space\n"
        assert parse_facts(response) == ["Uses DuckDB", "Tabs over spaces"]

    def test_empty(self):
        assert parse_facts("") == []


class TestGenerate:
    def test_success_first_try(self):
        sleeps = []
        with patch("litellm.completion", return_value=completion_response("- a")) as mock_completion:
            assert generate("prompt", "ollama:qwen2.5-coder:1.5b", sleep=sleeps.append) == "- a"

        kwargs = mock_completion.call_args.kwargs
        assert kwargs["model"] == "ollama/qwen2.5-coder:1.5b"
        assert kwargs["messages"] == [{"role": "user", "content": "prompt"}]
        assert sleeps == []

    def test_retries_with_linear_backoff(self):
        sleeps = []
        responses = [RuntimeError("refused"), RuntimeError("refused"), completion_response("- ok")]
        with patch("litellm.completion", side_effect=responses):
            assert generate("prompt", "ollama:qwen2.5-coder:1.5b", sleep=sleeps.append) == "- ok"
        assert sleeps == [1, 2]

    def test_gives_up_after_three_attempts(self):
        sleeps = []
        with patch("litellm.completion", side_effect=RuntimeError("refused")) as mock_completion:
            with pytest.raises(ProviderError) as exc_info:
                generate("prompt", "ollama:qwen2.5-coder:1.5b", sleep=sleeps.append)

        assert mock_completion.call_count == 3
        assert sleeps == [1, 2]
        assert exc_info.value.provider == "ollama"
        assert exc_info.value.attempts == 3
        assert "after 3 attempts" in str(exc_info.value)


class TestExtractFacts:
    def test_prompt_wraps_content(self):
        prompts = []

        def generator(prompt):
            prompts.append(prompt)
            return "- The team prefers small PRs\nthanks!"

        facts = extract_facts("alice: small PRs please", generator=generator)

        assert facts == ["The team prefers small PRs"]
        assert prompts[0] == FACT_EXTRACTION_PROMPT.format(content="alice: small PRs please")
        assert "---\nalice: small PRs please\n---" in prompts[0]

    def test_manager_uses_configured_generator(self, repo):
        from ami.config import Config
        from ami.memory.manager import MemoryManager

        manager = MemoryManager(repo, config=Config(embedding_model=None), generator=lambda p: "- one\n- two")
        assert manager.extract_facts("log") == ["one", "two"]


def test_format_reflection():
    memories = [
        Memory(id="abcdef123456", content="Ran migrations", tags=["db"]),
        Memory(id="0123456789ab", content="Fixed flaky test"),
    ]
    text = format_reflection(memories, 24)

    assert text.startswith("Reflecting on 2 episodic memories from the last 24 hour(s)")
    assert "1. [abcdef12] Ran migrations" in text
    assert "   Tags: db" in text
    assert "2. [01234567] Fixed flaky test" in text
    assert text.endswith(SYNTHESIS_PROMPT)
