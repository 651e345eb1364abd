"""
LLM Abstraction Layer — task routing across provider adapters.

Provides a unified interface for calling Claude, OpenAI, Kimi,
Perplexity and Gemini with per-task model selection and fallback.

Modules:
- types: Wire Message Model (messages, tools, chunks, results)
- llm_config: Task definitions, model catalog, routing table
- sse: SSEDecoder state machine and stream helpers
- parsing: Best-effort JSON extraction with degrade branches
- adapters: One adapter per provider
- router: AIRouter — task dispatch with fallback and emulation
- context: CustomerContext model and prompt rendering
- tools: CRM tool catalog offered on tool_call requests
- vision: DamageAnalyzer — roof damage reports from photos
- bootstrap: Build the router and analyzer from settings
"""
