"""
Guardian Intel — AI provider routing layer.

One uniform chat / classify / parse / research contract executed against
Claude, OpenAI, Gemini, Kimi and Perplexity, with per-task model
selection and graceful fallback.
"""

__version__ = "0.3.0"
