"""
Kimi adapter — Moonshot's OpenAI-compatible API.

Long-context model (128K) used for large document work; the registry id
is "kimi-k2", the wire model is moonshot-v1-128k.
"""

from __future__ import annotations

from guardian.llm.adapters.openai import OpenAICompatibleAdapter
from guardian.llm.llm_config import KIMI_K2, AIProvider


class KimiAdapter(OpenAICompatibleAdapter):
    provider = AIProvider.KIMI
    default_profile = KIMI_K2
    default_base_url = "https://api.moonshot.cn/v1"
    id_prefix = "kimi"
