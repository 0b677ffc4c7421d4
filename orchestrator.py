import asyncio
from enum import Enum
from typing import Optional, Set

from context import AppContext
from logging_config import get_logger
from schemas.messages import ChatUser, NewMessageEvent

logger = get_logger(__name__)

MESSAGE_RECEIVED_EVENT = "message received"


class ReplyState(str, Enum):
    IDLE = "idle"
    AI_CHECK = "ai-check"
    GENERATING = "generating"
    PERSISTING = "persisting"
    BROADCASTING = "broadcasting"
    FAILED = "failed"
    DONE = "done"


class AIReplyOrchestrator:
    """Answers chat messages on behalf of the AI participant.

    Each qualifying message gets its own background task: generate, persist, populate,
    broadcast to the chat room. Failures are logged and dropped; the regular fan-out has
    already happened by the time a task starts.
    """

    def __init__(self, sio, context: AppContext):
        self.sio = sio
        self.context = context
        # Strong references so running tasks aren't garbage collected mid-flight
        self.pending: Set[asyncio.Task] = set()

    def find_ai_user(self, event: NewMessageEvent) -> Optional[ChatUser]:
        ai_email = self.context.ai_user_email
        if not ai_email:
            return None
        for user in event.chat.participants:
            if user.email == ai_email:
                return user
        return None

    def maybe_reply(self, event: NewMessageEvent) -> Optional[asyncio.Task]:
        """Schedule an AI reply if the chat has an AI user who didn't send this message."""
        ai_user = self.find_ai_user(event)
        if ai_user is None or not ai_user.id:
            return None
        if event.sender.id == ai_user.id:
            logger.debug(f"Message in chat {event.chat.id} was sent by the AI user, not replying")
            return None
        if not event.chat.id:
            logger.debug("Chat has an AI user but no _id, not replying")
            return None

        logger.debug(f"AI user {ai_user.id} present in chat {event.chat.id}: {ReplyState.IDLE.value} -> {ReplyState.AI_CHECK.value} passed")
        task = asyncio.create_task(self._reply(ai_user.id, event.chat.id, event.text))
        self.pending.add(task)
        task.add_done_callback(self.pending.discard)
        return task

    async def _reply(self, ai_user_id: str, chat_id: str, content: str):
        state = ReplyState.GENERATING
        try:
            logger.debug(f"AI reply for chat {chat_id}: {state.value}")
            reply = await self.context.generator.generate_reply(content)

            state = ReplyState.PERSISTING
            logger.debug(f"AI reply for chat {chat_id}: {state.value}")
            record = await self.context.store.create(sender=ai_user_id, content=reply, chat=chat_id)
            payload = await self.context.store.populate(record)

            state = ReplyState.BROADCASTING
            logger.debug(f"AI reply for chat {chat_id}: {state.value}")
            await self.sio.emit(MESSAGE_RECEIVED_EVENT, payload, to=chat_id)
            logger.info(f"AI reply {payload.get('_id')} broadcast to chat {chat_id}")
        except Exception as e:
            logger.error(f"AI reply error in chat {chat_id} while {state.value}: {e}", exc_info=True)
            state = ReplyState.FAILED
        finally:
            logger.debug(f"AI reply for chat {chat_id} finished from {state.value}: {ReplyState.DONE.value}")

    async def drain(self):
        """Wait for every in-flight reply. Used at shutdown and by tests."""
        while self.pending:
            await asyncio.gather(*list(self.pending), return_exceptions=True)
