"""
Chat router — the entry point for the chat transport.

Endpoints:
  POST /chat/messages — Handle one inbound message, return the replies

The transport posts each message with the sender's handle in X-User-Id and
delivers the returned replies (text, optionally with a file) itself.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from kantong.database import get_db
from kantong.dependencies import get_user_id
from kantong.schemas.chat import ChatMessageRequest, ChatMessageResponse
from kantong.services.chat_service import ChatService, get_chat_service

router = APIRouter()


@router.post(
    "/messages",
    response_model=ChatMessageResponse,
    summary="Handle a chat message",
)
async def post_message(
    request: ChatMessageRequest,
    user_id: str = Depends(get_user_id),
    db: AsyncSession = Depends(get_db),
    chat: ChatService = Depends(get_chat_service),
):
    """
    Interpret the message, run the resulting action and return the replies.

    Failures are answered in the replies themselves, so this endpoint
    answers 200 for any message it could read.
    """
    return await chat.handle_message(db, user_id, request.text)
