"""
Wire Message Model — provider-agnostic request and response types.

Every adapter consumes and produces these; nothing provider-shaped
leaks past an adapter boundary.

Usage:
    from guardian.llm.types import ChatRequest, Message, ToolDefinition

    request = ChatRequest(
        messages=[
            Message.system("You are a roofing sales assistant."),
            Message.user("Who should I call first today?"),
        ],
        tools=[
            ToolDefinition(
                name="search_customers",
                description="Search customers by name or city",
                parameters={
                    "type": "object",
                    "properties": {"query": {"type": "string"}},
                    "required": ["query"],
                },
            )
        ],
        task="tool_call",
    )
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional

from guardian.llm.llm_config import AITask

if TYPE_CHECKING:
    from guardian.llm.context import CustomerContext


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class MessageRole(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class FinishReason(str, Enum):
    STOP = "stop"
    TOOL_CALLS = "tool_calls"
    LENGTH = "length"
    ERROR = "error"


class Capability(str, Enum):
    """Optional adapter operations beyond plain chat."""

    STREAM = "stream"
    RESEARCH = "research"
    CLASSIFY = "classify"
    PARSE = "parse"


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------

# Keys Gemini's functionDeclarations accept inside a schema node.
_GEMINI_SCHEMA_KEYS = frozenset({
    "type", "format", "description", "nullable", "enum",
    "properties", "required", "items", "minItems", "maxItems",
    "minimum", "maximum",
})


@dataclass(frozen=True)
class ToolDefinition:
    """
    Provider-agnostic tool/function definition.

    `parameters` is an object schema ({"type": "object", "properties",
    "required"}); a bare property map is accepted as well. Conversions
    are total: missing pieces become empty defaults.
    """

    name: str
    description: str = ""
    parameters: dict[str, Any] = field(default_factory=dict)

    def input_schema(self) -> dict[str, Any]:
        """Normalized JSON-schema object for the tool's arguments."""
        params = self.parameters if isinstance(self.parameters, dict) else {}
        if params.get("type") == "object" or "properties" in params:
            raw_properties = params.get("properties")
            required = params.get("required")
        else:
            raw_properties = params
            required = []
        if not isinstance(raw_properties, dict):
            raw_properties = {}
        if not isinstance(required, (list, tuple)):
            required = []

        properties: dict[str, Any] = {}
        for param_name, param_spec in raw_properties.items():
            if isinstance(param_spec, dict):
                properties[param_name] = param_spec
            else:
                properties[param_name] = {"type": "string", "description": str(param_spec)}

        return {
            "type": "object",
            "properties": properties,
            "required": [r for r in required if isinstance(r, str) and r in properties],
        }

    def to_anthropic(self) -> dict[str, Any]:
        """Convert to Anthropic Claude tool format."""
        return {
            "name": self.name,
            "description": self.description or "",
            "input_schema": self.input_schema(),
        }

    def to_openai(self) -> dict[str, Any]:
        """Convert to OpenAI function_calling format."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description or "",
                "parameters": self.input_schema(),
            },
        }

    def to_gemini(self) -> dict[str, Any]:
        """
        Convert to a Gemini functionDeclaration.

        Gemini rejects JSON-schema keywords it does not know and object
        schemas with no properties, so both are dropped.
        """
        declaration: dict[str, Any] = {
            "name": self.name,
            "description": self.description or "",
        }
        schema = self.input_schema()
        if schema["properties"]:
            declaration["parameters"] = _gemini_schema(schema)
        return declaration


def _gemini_schema(node: Any) -> Any:
    if not isinstance(node, dict):
        return node
    cleaned: dict[str, Any] = {}
    for key, value in node.items():
        if key not in _GEMINI_SCHEMA_KEYS:
            continue
        if key == "properties" and isinstance(value, dict):
            cleaned[key] = {name: _gemini_schema(spec) for name, spec in value.items()}
        elif key == "items":
            cleaned[key] = _gemini_schema(value)
        else:
            cleaned[key] = value
    if "required" in cleaned and not cleaned["required"]:
        del cleaned["required"]
    return cleaned


@dataclass
class ToolCall:
    """A tool invocation requested by the model."""

    id: str
    name: str
    arguments: dict[str, Any] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------

@dataclass
class Message:
    """One conversation turn."""

    role: MessageRole
    content: str = ""
    name: Optional[str] = None
    tool_call_id: Optional[str] = None
    tool_calls: list[ToolCall] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.role = MessageRole(self.role)
        if self.content is None:
            self.content = ""

    @classmethod
    def system(cls, content: str) -> Message:
        return cls(role=MessageRole.SYSTEM, content=content)

    @classmethod
    def user(cls, content: str) -> Message:
        return cls(role=MessageRole.USER, content=content)

    @classmethod
    def assistant(cls, content: str = "", tool_calls: Optional[list[ToolCall]] = None) -> Message:
        return cls(role=MessageRole.ASSISTANT, content=content, tool_calls=list(tool_calls or []))

    @classmethod
    def tool(cls, tool_call_id: str, content: str, name: Optional[str] = None) -> Message:
        return cls(role=MessageRole.TOOL, content=content, tool_call_id=tool_call_id, name=name)


@dataclass
class ChatRequest:
    """A uniform chat request, routed by `task`."""

    messages: list[Message]
    tools: list[ToolDefinition] = field(default_factory=list)
    task: Optional[AITask] = None
    max_tokens: Optional[int] = None
    temperature: Optional[float] = None
    stream: bool = False
    context: Optional[CustomerContext] = None

    def system_prompt(self) -> Optional[str]:
        """All system messages joined by a blank line, or None."""
        parts = [
            m.content for m in self.messages
            if m.role == MessageRole.SYSTEM and m.content
        ]
        return "\n\n".join(parts) if parts else None

    def conversation(self) -> list[Message]:
        """The non-system turns, in order."""
        return [m for m in self.messages if m.role != MessageRole.SYSTEM]


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------

@dataclass
class Usage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    @classmethod
    def from_counts(
        cls,
        prompt_tokens: Any = None,
        completion_tokens: Any = None,
        total_tokens: Any = None,
    ) -> Usage:
        """Build from provider counts; missing values become zero."""
        prompt = int(prompt_tokens or 0)
        completion = int(completion_tokens or 0)
        total = int(total_tokens or 0) or prompt + completion
        return cls(prompt_tokens=prompt, completion_tokens=completion, total_tokens=total)


@dataclass
class ChatResponse:
    """Normalized result of a chat call."""

    id: str
    message: Message
    model: str
    usage: Usage = field(default_factory=Usage)
    finish_reason: FinishReason = FinishReason.STOP

    @property
    def content(self) -> str:
        return self.message.content

    @property
    def tool_calls(self) -> list[ToolCall]:
        return self.message.tool_calls


@dataclass
class StreamChunk:
    """
    One streamed delta.

    Concatenating `delta` across a stream reconstructs the content the
    non-streaming call returns.
    """

    id: str
    delta: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    finish_reason: Optional[FinishReason] = None

    @property
    def is_final(self) -> bool:
        return self.finish_reason is not None


# ---------------------------------------------------------------------------
# Research / Classify / Parse
# ---------------------------------------------------------------------------

@dataclass
class ResearchRequest:
    query: str
    context: Optional[str] = None
    sources: list[str] = field(default_factory=list)  # web | news | academic
    max_results: Optional[int] = None


@dataclass
class Citation:
    title: str
    url: str
    snippet: str = ""


@dataclass
class ResearchResult:
    answer: str
    citations: list[Citation] = field(default_factory=list)
    related_queries: list[str] = field(default_factory=list)


@dataclass
class ClassifyRequest:
    text: str
    categories: list[str]
    multi_label: bool = False


@dataclass
class CategoryScore:
    label: str
    confidence: float


@dataclass
class ClassifyResult:
    categories: list[CategoryScore] = field(default_factory=list)

    @property
    def top(self) -> Optional[CategoryScore]:
        if not self.categories:
            return None
        return max(self.categories, key=lambda c: c.confidence)


@dataclass
class ParseRequest:
    text: str
    schema: dict[str, Any]


@dataclass
class ParseResult:
    data: dict[str, Any] = field(default_factory=dict)
    confidence: float = 0.0
