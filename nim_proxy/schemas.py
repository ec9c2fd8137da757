"""
Application data models
"""

from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class ContentPart(BaseModel):
    """Content part model for OpenAI's new content format"""
    model_config = ConfigDict(extra="allow")

    type: str
    text: Optional[str] = None


class Message(BaseModel):
    """Chat message model"""
    model_config = ConfigDict(extra="allow")

    role: str
    content: Optional[Union[str, List[ContentPart]]] = None


class ChatCompletionRequest(BaseModel):
    """OpenAI-compatible request model"""
    model_config = ConfigDict(extra="allow")

    model: str
    messages: List[Message]
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    stream: Optional[bool] = None


class UpstreamRequest(BaseModel):
    """Body sent to the NIM chat completions endpoint"""
    model: str
    messages: List[Dict[str, Any]]
    temperature: float
    max_tokens: int
    stream: bool


class Usage(BaseModel):
    model_config = ConfigDict(extra="allow")

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class UpstreamMessage(BaseModel):
    model_config = ConfigDict(extra="allow")

    role: Optional[str] = None
    content: Optional[str] = None
    reasoning_content: Optional[str] = None


class UpstreamChoice(BaseModel):
    model_config = ConfigDict(extra="allow")

    index: Optional[int] = None
    message: UpstreamMessage = Field(default_factory=UpstreamMessage)
    finish_reason: Optional[str] = None


class UpstreamResponse(BaseModel):
    """NIM non-stream chat completion response (only the fields we read)"""
    model_config = ConfigDict(extra="allow")

    choices: List[UpstreamChoice]
    usage: Optional[Usage] = None


class ChoiceMessage(BaseModel):
    role: str
    content: str


class ChatCompletionChoice(BaseModel):
    index: int
    message: ChoiceMessage
    finish_reason: Optional[str] = None


class ChatCompletionResponse(BaseModel):
    id: str
    object: Literal["chat.completion"] = "chat.completion"
    created: int
    model: str
    choices: List[ChatCompletionChoice]
    usage: Usage


class Model(BaseModel):
    """Model information for listing"""
    id: str
    object: str = "model"
    created: int
    owned_by: str


class ModelsResponse(BaseModel):
    """Models list response model"""
    object: str = "list"
    data: List[Model]


class HealthResponse(BaseModel):
    status: str = "ok"
    service: str
    authenticated: bool = True
