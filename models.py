"""Data models for deepseek-gateway."""
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, NonNegativeInt

Role = Literal["system", "user", "assistant"]


class ChatMessage(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: Role
    content: str


class ChatRequest(BaseModel):
    """Inbound chat request, built only after validate_chat_request passes."""
    model_config = ConfigDict(extra="ignore")

    messages: List[ChatMessage]
    model: Optional[str] = None
    # 0 falls back to the configured default.
    max_tokens: Optional[NonNegativeInt] = None
    temperature: Optional[float] = None
    top_p: Optional[float] = None
    frequency_penalty: Optional[float] = None
    presence_penalty: Optional[float] = None
    stop: Optional[Union[str, List[str]]] = None
    stream: Optional[bool] = False


class UpstreamOptions(BaseModel):
    """Per-call options after merging request overrides with defaults."""
    model_config = ConfigDict(frozen=True)

    api_key: Optional[str] = None
    model: Optional[str] = None
    max_tokens: Optional[int] = None
    temperature: Optional[float] = None
    stream: bool = False
    top_p: Optional[float] = None
    frequency_penalty: Optional[float] = None
    presence_penalty: Optional[float] = None
    stop: Optional[Union[str, List[str]]] = None


class Usage(BaseModel):
    model_config = ConfigDict(extra="allow")

    prompt_tokens: Optional[int] = None
    completion_tokens: Optional[int] = None
    total_tokens: Optional[int] = None


class ChatLogEntry(BaseModel):
    """Usage summary written to the key-value store after a completion."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    timestamp: str
    model: str
    messages_count: int = Field(alias="messagesCount")
    tokens_used: Usage = Field(default_factory=Usage, alias="tokensUsed")
    request_id: Optional[str] = Field(default=None, alias="requestId")

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)


class HealthStatus(BaseModel):
    status: Literal["healthy", "unhealthy"] = "healthy"
    timestamp: str
    service: str
    version: str

