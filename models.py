import time
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator


# --- Generic HTTP exchange with the hosting front ends ---
class ProxyRequest(BaseModel):
    """A platform-neutral HTTP request handed to the proxy core by an adapter."""

    method: str = Field("GET", description="HTTP method, upper-cased.")
    url: str = Field(..., description="Absolute request URL including the path.")
    headers: Dict[str, str] = Field(default_factory=dict, description="Request headers with lower-cased names.")
    body: bytes = Field(b"", description="Raw request body.")

    @field_validator("method", mode="before")
    @classmethod
    def _upper_method(cls, value: Any) -> str:
        return (value or "GET").upper()

    @field_validator("headers", mode="before")
    @classmethod
    def _lower_header_names(cls, value: Any) -> Dict[str, str]:
        return {str(k).lower(): str(v) for k, v in (value or {}).items()}

    def header(self, name: str, default: str = "") -> str:
        return self.headers.get(name.lower(), default)


class ProxyResponse(BaseModel):
    """A platform-neutral HTTP response produced by the proxy core."""

    status_code: int
    headers: Dict[str, str] = Field(default_factory=dict)
    body: Optional[str] = Field(None, description="Text body, None for empty responses.")
    events: Optional[List[str]] = Field(None, description="Pre-rendered SSE frames for event-stream responses.")

    @property
    def text(self) -> str:
        if self.events is not None:
            return "".join(self.events)
        return self.body or ""


# --- OpenAI Error Definition ---
class OpenAIErrorDetail(BaseModel):
    message: str
    type: str = "invalid_request_error"
    param: Optional[str] = None
    code: Optional[str] = None


class OpenAIErrorResponse(BaseModel):
    error: OpenAIErrorDetail


# --- OpenAI Model Definition ---
class OpenAIModel(BaseModel):
    """Represents the structure of a model object in OpenAI's /v1/models format."""

    id: str = Field(..., description="The model identifier, which can be referenced in the API endpoints.")
    object: str = Field(default="model", description="The object type, which is always 'model'.")
    created: int = Field(default_factory=lambda: int(time.time()), description="The Unix timestamp (in seconds) when the model was created.")
    owned_by: str = Field(default="chatjimmy", description="The organization that owns the model.")


class OpenAIModelList(BaseModel):
    """Represents the structure of the list returned by OpenAI's /v1/models endpoint."""

    object: str = Field("list", description="The object type, which is always 'list'.")
    data: List[OpenAIModel] = Field(..., description="A list of model objects.")


# --- Upstream (chatjimmy) Definitions ---
class ChatMessage(BaseModel):
    """A single flattened message forwarded upstream."""

    role: str
    content: str


class UpstreamChatOptions(BaseModel):
    selectedModel: str = Field(..., description="Model id the upstream should answer with.")
    systemPrompt: str = Field("", description="System prompt assembled from system-role messages.")
    topK: int = Field(..., description="Upstream sampling breadth.")


class UpstreamRequest(BaseModel):
    """Represents the request body for the chatjimmy chat endpoint."""

    messages: List[ChatMessage]
    chatOptions: UpstreamChatOptions
    attachment: None = None


# --- OpenAI Chat Completion Definitions ---
class CompletionMessage(BaseModel):
    role: Literal["assistant"] = "assistant"
    content: str


class CompletionChoice(BaseModel):
    index: int = 0
    message: CompletionMessage
    finish_reason: str = "stop"


class CompletionUsage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class OpenAIChatCompletionResponse(BaseModel):
    """Represents the response body for OpenAI's /v1/chat/completions."""

    id: str
    object: str = "chat.completion"
    created: int = Field(default_factory=lambda: int(time.time()))
    model: str
    choices: List[CompletionChoice]
    usage: CompletionUsage
    chatjimmy_stats: Any = Field(default_factory=dict, description="Upstream stats block, passed through verbatim.")


class ChunkChoice(BaseModel):
    index: int = 0
    delta: Dict[str, Any] = Field(default_factory=dict)
    finish_reason: Optional[str] = None


class OpenAIChatCompletionChunk(BaseModel):
    """A single `chat.completion.chunk` frame of a streamed response."""

    id: str
    object: str = "chat.completion.chunk"
    created: int
    model: str
    choices: List[ChunkChoice]
