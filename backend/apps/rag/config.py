"""
Provider configuration for the RAG pipeline.

Settings are snapshotted into an immutable value that is passed
explicitly into the pipeline, so tests can build one by hand instead of
patching the environment.
"""
from dataclasses import dataclass

from django.conf import settings


@dataclass(frozen=True)
class ProviderConfig:
    """Credentials and tuning knobs for embedding and generation providers."""
    gemini_api_key: str = ''
    openai_api_key: str = ''
    anthropic_api_key: str = ''
    openai_base_url: str = 'https://api.openai.com/v1'
    gemini_embed_model: str = 'text-embedding-004'
    openai_embed_model: str = 'text-embedding-3-small'
    llm_timeout: float = 120.0
    embed_timeout: float = 60.0
    embed_max_workers: int = 8
    retrieval_max_workers: int = 4
    enable_query_expansion: bool = True

    @property
    def has_gemini(self) -> bool:
        return bool(self.gemini_api_key)

    @property
    def has_openai(self) -> bool:
        return bool(self.openai_api_key)

    @property
    def has_anthropic(self) -> bool:
        return bool(self.anthropic_api_key)

    @classmethod
    def from_settings(cls) -> "ProviderConfig":
        """Build configuration from Django settings."""
        return cls(
            gemini_api_key=getattr(settings, 'GEMINI_API_KEY', ''),
            openai_api_key=getattr(settings, 'OPENAI_API_KEY', ''),
            anthropic_api_key=getattr(settings, 'ANTHROPIC_API_KEY', ''),
            openai_base_url=getattr(settings, 'OPENAI_BASE_URL', 'https://api.openai.com/v1'),
            gemini_embed_model=getattr(settings, 'GEMINI_EMBED_MODEL', 'text-embedding-004'),
            openai_embed_model=getattr(settings, 'OPENAI_EMBED_MODEL', 'text-embedding-3-small'),
            llm_timeout=float(getattr(settings, 'LLM_TIMEOUT', 120)),
            embed_timeout=float(getattr(settings, 'EMBED_TIMEOUT', 60)),
            embed_max_workers=int(getattr(settings, 'EMBED_MAX_WORKERS', 8)),
            retrieval_max_workers=int(getattr(settings, 'RETRIEVAL_MAX_WORKERS', 4)),
            enable_query_expansion=getattr(settings, 'ENABLE_QUERY_EXPANSION', True),
        )
