"""Tests for model string handling and embedding providers."""

from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from ami.exceptions import ProviderError
from ami.memory.embeddings import get_embedding, is_configured
from ami.models import get_model_params, parse_model_string, provider_credential_missing


class TestModelStrings:
    def test_parse_with_variant(self):
        assert parse_model_string("ollama:qwen2.5-coder:1.5b") == ("ollama", "qwen2.5-coder", "1.5b")

    def test_parse_without_variant(self):
        assert parse_model_string("openai:text-embedding-3-small") == ("openai", "text-embedding-3-small", None)

    def test_parse_invalid(self):
        with pytest.raises(ValueError, match="Invalid model string"):
            parse_model_string("gpt-4")

    def test_ollama_params(self, monkeypatch):
        monkeypatch.delenv("OLLAMA_BASE_URL", raising=False)
        params = get_model_params("ollama:qwen2.5-coder:1.5b")
        assert params == {"model": "ollama/qwen2.5-coder:1.5b", "api_base": "http://localhost:11434"}

    def test_openai_params(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
        params = get_model_params("openai:text-embedding-3-small")
        assert params == {"model": "openai/text-embedding-3-small", "api_key": "sk-test"}

    def test_credential_checks(self, monkeypatch):
        assert provider_credential_missing("openai:text-embedding-3-small")
        assert not provider_credential_missing("ollama:nomic-embed-text")
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
        assert not provider_credential_missing("openai:text-embedding-3-small")


class TestEmbeddings:
    def test_is_configured(self, monkeypatch):
        assert not is_configured(None)
        assert not is_configured("garbage")
        assert not is_configured("openai:text-embedding-3-small")
        assert is_configured("fastembed:BAAI/bge-small-en-v1.5")
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
        assert is_configured("openai:text-embedding-3-small")

    def test_missing_key_raises_provider_error(self):
        with pytest.raises(ProviderError, match="no API key"):
            get_embedding("hello", "openai:text-embedding-3-small")

    def test_litellm_embedding(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
        response = SimpleNamespace(data=[{"embedding": [0.1, 0.2, 0.3]}])

        with patch("litellm.embedding", return_value=response) as mock_embedding:
            vector = get_embedding("hello", "openai:text-embedding-3-small")

        assert vector == [0.1, 0.2, 0.3]
        kwargs = mock_embedding.call_args.kwargs
        assert kwargs["input"] == ["hello"]
        assert kwargs["model"] == "openai/text-embedding-3-small"

    def test_provider_failure_is_wrapped(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
        with patch("litellm.embedding", side_effect=RuntimeError("503")):
            with pytest.raises(ProviderError, match="embedding request failed"):
                get_embedding("hello", "openai:text-embedding-3-small")

    def test_fastembed_model(self):
        fake_model = MagicMock()
        fake_model.embed.return_value = iter([SimpleNamespace(tolist=lambda: [0.5, 0.25])])
        fake_module = MagicMock()
        fake_module.TextEmbedding.return_value = fake_model

        with patch.dict("sys.modules", {"fastembed": fake_module}):
            with patch("ami.memory.embeddings._embedding_model", None):
                vector = get_embedding("hello", "fastembed:BAAI/bge-small-en-v1.5")

        assert vector == [0.5, 0.25]
        fake_module.TextEmbedding.assert_called_once_with(model_name="BAAI/bge-small-en-v1.5")
