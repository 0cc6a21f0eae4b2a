"""Pydantic schemas for the chat endpoint."""

from pydantic import BaseModel, Field


class ChatMessageRequest(BaseModel):
    """Request body for POST /chat/messages. The sender is the X-User-Id header."""
    text: str = Field(min_length=1)


class ReplyMessage(BaseModel):
    """One outbound message for the chat transport to deliver."""
    recipient: str
    text: str
    attachment: str | None = Field(None, description="Path of a file to send with the text")


class ChatMessageResponse(BaseModel):
    action: str | None = None
    replies: list[ReplyMessage]
