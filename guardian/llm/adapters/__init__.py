"""
Provider adapters — one per upstream LLM API.

- claude: Anthropic Messages API (chat, stream, classify, parse)
- openai: OpenAI Chat Completions, and the OpenAI-compatible base
- kimi: Moonshot long-context model (OpenAI-compatible)
- perplexity: Sonar with citations (chat, stream, research)
- gemini: Google Generative Language API
"""

from guardian.llm.adapters.base import ProviderAdapter
from guardian.llm.adapters.claude import ClaudeAdapter
from guardian.llm.adapters.gemini import GeminiAdapter
from guardian.llm.adapters.kimi import KimiAdapter
from guardian.llm.adapters.openai import OpenAIAdapter, OpenAICompatibleAdapter
from guardian.llm.adapters.perplexity import PerplexityAdapter

__all__ = [
    "ClaudeAdapter",
    "GeminiAdapter",
    "KimiAdapter",
    "OpenAIAdapter",
    "OpenAICompatibleAdapter",
    "PerplexityAdapter",
    "ProviderAdapter",
]
