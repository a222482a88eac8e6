"""
Pydantic models for the company chatbot
"""

from enum import Enum
from typing import Any, List

from pydantic import BaseModel, Field


class MessageRole(str, Enum):
    """Message roles for conversation"""
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class ChatMessage(BaseModel):
    """Individual chat message"""
    role: MessageRole
    content: str

    def to_dict(self) -> dict:
        return {"role": self.role.value, "content": self.content}


class CompletionRequest(BaseModel):
    """Body sent to the chat completion endpoint"""
    model: str
    messages: List[ChatMessage]
    temperature: float
    max_tokens: int = Field(..., gt=0)

    def to_payload(self) -> dict:
        return self.model_dump(mode="json")


class CacheEntry(BaseModel):
    """Company data as persisted in the disk cache file"""
    cache_key: str
    content: Any
    timestamp: int
    source: str
