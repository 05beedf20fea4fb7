"""
Tests for the query expander module.

Tests keyword parsing and the fail-open behaviour of expand_query.
"""
from unittest.mock import patch, MagicMock

from apps.rag.config import ProviderConfig
from apps.rag.llm_client import LLMError, NoProviderAvailable
from apps.rag.query_expander import (
    EXPANSION_MAX_TOKENS,
    EXPANSION_MODEL,
    EXPANSION_TEMPERATURE,
    expand_query,
    parse_keywords,
)

from conftest import FakeLLMClient


# ============================================================================
# Keyword Parsing Tests
# ============================================================================

class TestParseKeywords:
    """Tests for splitting the comma-separated model output."""

    def test_parse_simple_list(self):
        assert parse_keywords("refund, policy, return") == ["refund", "policy", "return"]

    def test_drops_empty_tokens(self):
        """Stray commas and whitespace-only tokens are discarded."""
        assert parse_keywords(" refund ,, policy , ,return,") == ["refund", "policy", "return"]

    def test_keeps_multi_word_keywords(self):
        assert parse_keywords("refund window, return shipping") == [
            "refund window", "return shipping"
        ]

    def test_empty_response(self):
        assert parse_keywords("") == []
        assert parse_keywords(" , , ") == []

    def test_no_commas(self):
        """A single unseparated answer is one keyword."""
        assert parse_keywords("refunds") == ["refunds"]


# ============================================================================
# Expansion Tests
# ============================================================================

class TestExpandQuery:
    """Tests for expand_query."""

    def test_successful_expansion(self, provider_config):
        """Keywords come back in model order."""
        client = FakeLLMClient(chat_reply="refund, policy, return")
        requested = []

        def resolver(model, config):
            requested.append(model)
            return client

        keywords = expand_query("What is the refund policy?", provider_config, llm_resolver=resolver)

        assert keywords == ["refund", "policy", "return"]
        assert requested == [EXPANSION_MODEL]
        messages = client.chat_calls[0]
        assert len(messages) == 1
        assert "Question: What is the refund policy?" in messages[0].content
        assert "separated by commas" in messages[0].content

    def test_llm_error_returns_empty(self, provider_config):
        """Provider failure falls back to question-only retrieval."""
        client = FakeLLMClient(chat_error=LLMError("503"))

        keywords = expand_query("refund?", provider_config, llm_resolver=lambda m, c: client)

        assert keywords == []

    def test_no_provider_returns_empty(self):
        """Without any credential expansion is skipped, not raised."""
        keywords = expand_query("refund?", ProviderConfig())

        assert keywords == []

    def test_resolver_error_returns_empty(self, provider_config):
        def resolver(model, config):
            raise NoProviderAvailable("No suitable model available")

        assert expand_query("refund?", provider_config, llm_resolver=resolver) == []

    def test_disabled_makes_no_call(self):
        config = ProviderConfig(gemini_api_key="k", enable_query_expansion=False)
        client = FakeLLMClient(chat_reply="refund")

        keywords = expand_query("refund?", config, llm_resolver=lambda m, c: client)

        assert keywords == []
        assert client.chat_calls == []

    def test_blank_question(self, provider_config):
        client = FakeLLMClient(chat_reply="refund")

        assert expand_query("   ", provider_config, llm_resolver=lambda m, c: client) == []
        assert client.chat_calls == []

    def test_uses_low_temperature(self, provider_config):
        """The expansion call is short and low temperature."""
        captured = {}

        class RecordingClient(FakeLLMClient):
            def chat(self, messages, temperature=0.2, max_tokens=500):
                captured["temperature"] = temperature
                captured["max_tokens"] = max_tokens
                return super().chat(messages, temperature, max_tokens)

        client = RecordingClient(chat_reply="a, b")
        expand_query("refund?", provider_config, llm_resolver=lambda m, c: client)

        assert captured == {
            "temperature": EXPANSION_TEMPERATURE,
            "max_tokens": EXPANSION_MAX_TOKENS,
        }

    @patch('apps.rag.llm_client.httpx.Client')
    def test_null_message_in_reply_returns_empty(self, mock_client_class):
        """A reply with a null message is treated as a failed expansion."""
        mock_response = MagicMock()
        mock_response.json.return_value = {"choices": [{"message": None}]}
        mock_response.raise_for_status = MagicMock()

        mock_client = MagicMock()
        mock_client.post.return_value = mock_response
        mock_client.__enter__ = MagicMock(return_value=mock_client)
        mock_client.__exit__ = MagicMock(return_value=False)
        mock_client_class.return_value = mock_client

        keywords = expand_query("What is the refund policy?", ProviderConfig(openai_api_key="k"))

        assert keywords == []
        mock_client.post.assert_called_once()

    def test_unexpected_error_returns_empty(self, provider_config):
        """Errors outside the LLM taxonomy never abort the request."""
        client = FakeLLMClient(chat_error=RuntimeError("client bug"))

        keywords = expand_query("refund?", provider_config, llm_resolver=lambda m, c: client)

        assert keywords == []
