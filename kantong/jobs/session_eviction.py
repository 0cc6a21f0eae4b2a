"""Idle chat session eviction scheduled job."""

import logging

from kantong.database import AsyncSessionLocal
from kantong.services import business_service
from kantong.services.session_store import SessionStore, session_store

logger = logging.getLogger(__name__)


async def evict_idle_sessions(store: SessionStore | None = None, session_factory=None) -> list[str]:
    """Drop idle chat sessions and log their users out of any business."""
    store = session_store if store is None else store
    evicted = store.evict_idle()
    if not evicted:
        return evicted

    async with (session_factory or AsyncSessionLocal)() as db:
        for user_id in evicted:
            await business_service.end_business_session(db, user_id)
        await db.commit()

    logger.info("evict_idle_sessions closed %d session(s)", len(evicted))
    return evicted
