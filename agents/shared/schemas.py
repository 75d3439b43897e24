"""
Project Conductor - Schemas

Pydantic models for the records exchanged between the orchestrator, the
agent chain, the ReAct executor and tools.
"""

from pydantic import BaseModel, Field, ConfigDict, model_validator
from datetime import datetime, UTC
from typing import Optional, Dict, Any, List, Literal, Union, FrozenSet, Annotated
import uuid


class ConductorBaseMessage(BaseModel):
    """Base class for all Conductor messages"""
    model_config = ConfigDict(
        populate_by_name=True,
        use_enum_values=True
    )

    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))

    def to_json(self) -> str:
        """Serialize to JSON string"""
        return self.model_dump_json()

    @classmethod
    def from_json(cls, json_str: str):
        """Deserialize from JSON string"""
        return cls.model_validate_json(json_str)


# ============================================
# Conversation Messages
# ============================================

Role = Literal["system", "user", "assistant", "tool"]


class ChatMessage(BaseModel):
    """Single conversation message"""
    role: Role
    content: str
    name: Optional[str] = None

    def to_openai(self) -> Dict[str, str]:
        message = {"role": self.role, "content": self.content}
        if self.name:
            message["name"] = self.name
        return message


def system_message(content: str) -> ChatMessage:
    return ChatMessage(role="system", content=content)


def user_message(content: str) -> ChatMessage:
    return ChatMessage(role="user", content=content)


def assistant_message(content: str) -> ChatMessage:
    return ChatMessage(role="assistant", content=content)


def last_user_text(messages: List[ChatMessage]) -> str:
    """Return the content of the most recent user message, or ''"""
    for message in reversed(messages):
        if message.role == "user":
            return message.content
    return ""


# ============================================
# Tool and Capability Schemas
# ============================================

class ToolSchema(BaseModel):
    """Schema describing a tool to the model"""
    name: str
    description: str
    input_schema: Dict[str, Any] = Field(default_factory=lambda: {"type": "object"})


class AgentMeta(BaseModel):
    """Lexical matching metadata of an agent"""
    model_config = ConfigDict(frozen=True)

    keywords: FrozenSet[str] = frozenset()
    aliases: FrozenSet[str] = frozenset()


class AgentCapabilities(BaseModel):
    """Agent description and available tools, as shown to classifiers"""
    name: str
    description: str
    keywords: List[str] = []
    aliases: List[str] = []
    tools: List[ToolSchema] = []


# ============================================
# Tool Results
# ============================================

class TextContent(BaseModel):
    type: Literal["text"] = "text"
    text: str


class ImageContent(BaseModel):
    type: Literal["image"] = "image"
    mime_type: str = "image/png"
    data: str = ""


class AudioContent(BaseModel):
    type: Literal["audio"] = "audio"
    mime_type: str = "audio/wav"
    data: str = ""


class ResourceContent(BaseModel):
    type: Literal["resource"] = "resource"
    uri: str
    mime_type: Optional[str] = None


class BlobContent(BaseModel):
    type: Literal["blob"] = "blob"
    mime_type: str = "application/octet-stream"
    data: str = ""


ContentPart = Annotated[
    Union[TextContent, ImageContent, AudioContent, ResourceContent, BlobContent],
    Field(discriminator="type")
]


class ToolResult(BaseModel):
    """Result of a tool invocation, polymorphic over content parts"""
    content: List[ContentPart] = []
    is_error: bool = False
    structured_content: Optional[Dict[str, Any]] = None

    @classmethod
    def from_text(cls, text: str, **kwargs) -> "ToolResult":
        return cls(content=[TextContent(text=text)], **kwargs)


# ============================================
# Chain and ReAct Records
# ============================================

class IntentResult(BaseModel):
    """Outcome of intent analysis, written once per request"""
    model_config = ConfigDict(frozen=True)

    mode: Literal["direct", "react"]
    reason: str


class ReActStep(BaseModel):
    """One round of the reasoning loop"""
    thought: str = ""
    action: Literal["tool_call", "final_answer"]
    tool_name: Optional[str] = None
    parameters: Dict[str, Any] = {}
    observation: Optional[str] = None
    answer: Optional[str] = None
    is_error: bool = False


class ReActTransition(BaseModel):
    """State machine transition recorded in verbose mode"""
    from_state: str
    to_state: str
    iteration: int
    detail: str = ""
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))


# ============================================
# Routing Records
# ============================================

class RouteResult(BaseModel):
    """Agent selected by the router"""
    name: str
    reason: str = "llm"
    confidence: float = 1.0
    task: Optional[str] = None


class AgentOutcome(BaseModel):
    """Per-agent result of an orchestrated run"""
    agent_name: str
    final_answer: Optional[str] = None
    error: Optional[str] = None
    reason: str = ""

    @property
    def ok(self) -> bool:
        return self.error is None and bool(self.final_answer)


# ============================================
# Orchestration Messages
# ============================================

class OrchestrationRequest(ConductorBaseMessage):
    """Caller request for orchestration"""
    message_type: Literal["orchestration_request"]
    correlation_id: str = Field(default_factory=lambda: f"corr-{uuid.uuid4()}")
    request: Optional[str] = None  # Shorthand for a single user message
    messages: List[ChatMessage] = []
    agent_name: Optional[str] = None
    multi_agent: bool = False
    max_agents: Optional[int] = None
    max_steps: Optional[int] = None
    react_verbose: bool = False
    temperature: Optional[float] = None
    initial_steps: List[ReActStep] = []

    @model_validator(mode="after")
    def _ensure_messages(self):
        if not self.messages and self.request:
            self.messages = [user_message(self.request)]
        if not self.messages:
            raise ValueError("request requires at least one message")
        return self


class OrchestrationResult(ConductorBaseMessage):
    """Final orchestration result"""
    message_type: Literal["orchestration_result"]
    correlation_id: str
    status: Literal["completed", "failed"]
    answer: Optional[str] = None
    outcomes: List[AgentOutcome] = []
    agents_involved: List[str] = []
    resolution: Optional[str] = None
    error: Optional[str] = None
    error_kind: Optional[Literal["no_agent", "agent_failed"]] = None
    total_duration_ms: float = 0.0


# ============================================
# Progress Update Messages
# ============================================

class ProgressUpdate(ConductorBaseMessage):
    """Progress event recorded during a run"""
    message_type: Literal["progress_update"]
    correlation_id: str
    event_type: Literal[
        "started",
        "routed",
        "transition",
        "agent_completed",
        "error",
        "completed"
    ]
    data: Dict[str, Any]
    message: str
