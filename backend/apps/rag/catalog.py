"""
Static catalog of selectable chat models.

Only providers with a configured credential are listed.
"""
from dataclasses import dataclass, asdict
from typing import List

from apps.rag.config import ProviderConfig


@dataclass(frozen=True)
class ModelInfo:
    """A model the client may request."""
    id: str
    name: str
    provider: str  # "openai", "google" or "anthropic"
    available: bool = True

    def to_dict(self) -> dict:
        return asdict(self)


OPENAI_MODELS = (
    ModelInfo("gpt-4o", "GPT-4o", "openai"),
    ModelInfo("gpt-4o-mini", "GPT-4o Mini", "openai"),
    ModelInfo("gpt-4-turbo", "GPT-4 Turbo", "openai"),
    ModelInfo("gpt-3.5-turbo", "GPT-3.5 Turbo", "openai"),
)

GOOGLE_MODELS = (
    ModelInfo("gemini-1.5-pro", "Gemini 1.5 Pro", "google"),
    ModelInfo("gemini-1.5-flash", "Gemini 1.5 Flash", "google"),
    ModelInfo("gemini-1.0-pro", "Gemini 1.0 Pro", "google"),
)

ANTHROPIC_MODELS = (
    ModelInfo("claude-3-5-sonnet-20241022", "Claude 3.5 Sonnet", "anthropic"),
    ModelInfo("claude-3-5-haiku-20241022", "Claude 3.5 Haiku", "anthropic"),
    ModelInfo("claude-3-opus-20240229", "Claude 3 Opus", "anthropic"),
)


def available_models(config: ProviderConfig) -> List[ModelInfo]:
    """List models whose provider is configured, OpenAI first."""
    models: List[ModelInfo] = []
    if config.has_openai:
        models.extend(OPENAI_MODELS)
    if config.has_gemini:
        models.extend(GOOGLE_MODELS)
    if config.has_anthropic:
        models.extend(ANTHROPIC_MODELS)
    return models
