from datetime import datetime
from typing import Any, Optional

from pydantic import ValidationError

from context import AppContext
from logging_config import get_logger
from orchestrator import AIReplyOrchestrator, MESSAGE_RECEIVED_EVENT
from schemas.messages import NewMessageEvent
from sessions import SessionRegistry

logger = get_logger(__name__)

CONNECTED_EVENT = "connected"


class ChatSocketHandler:
    """One dispatch method per Socket.IO event.

    `sio` is a socketio.AsyncServer (or anything with async `emit` and `enter_room`).
    """

    def __init__(self, sio, context: AppContext, registry: Optional[SessionRegistry] = None):
        self.sio = sio
        self.context = context
        self.registry = registry if registry is not None else SessionRegistry()
        self.orchestrator = AIReplyOrchestrator(sio, context)

    def register(self):
        self.sio.on("connect", self.on_connect)
        self.sio.on("disconnect", self.on_disconnect)
        self.sio.on("setup", self.on_setup)
        self.sio.on("join chat", self.on_join_chat)
        self.sio.on("new message", self.on_new_message)
        logger.info("Socket.IO chat handlers registered")
        return self

    async def on_connect(self, sid: str, environ: Optional[dict] = None, auth: Any = None):
        self.registry.register(sid)
        logger.info(f"Socket connected: {sid}")

    async def on_disconnect(self, sid: str, *args):
        # Socket.IO removes the connection from its rooms itself
        session = self.registry.drop(sid)
        if session is None:
            logger.info(f"Socket disconnected: {sid}")
            return
        duration = (datetime.now() - session.connected_at).total_seconds()
        logger.info(f"Socket disconnected: {sid} (user {session.user_id}, connected {duration:.1f}s)")

    async def _join(self, sid: str, room: str) -> bool:
        if not self.registry.add_room(sid, room):
            logger.debug(f"Connection {sid} already in room {room}")
            return False
        await self.sio.enter_room(sid, room)
        return True

    async def on_setup(self, sid: str, user: Any = None):
        """Join the user's private room and acknowledge."""
        user_id = user.get("_id") if isinstance(user, dict) else None
        if not user_id:
            logger.debug(f"Ignoring setup without user id from {sid}")
            return
        user_id = str(user_id)
        self.registry.bind_user(sid, user_id)
        await self._join(sid, user_id)
        await self.sio.emit(CONNECTED_EVENT, to=sid)
        logger.info(f"Connection {sid} set up for user {user_id}")

    async def on_join_chat(self, sid: str, chat_id: Any = None):
        if not chat_id:
            logger.debug(f"Ignoring join chat without chat id from {sid}")
            return
        chat_id = str(chat_id)
        if await self._join(sid, chat_id):
            logger.info(f"User joined chat: {chat_id}")

    async def on_new_message(self, sid: str, message: Any = None):
        # Return nothing: a handler's return value becomes the client's ack payload
        await self.dispatch_message(sid, message)

    async def dispatch_message(self, sid: str, message: Any):
        """Fan out a message and schedule the AI reply, if any. Returns the reply task."""
        try:
            event = NewMessageEvent.model_validate(message)
        except ValidationError as e:
            logger.debug(f"Dropping malformed message from {sid}: {e.error_count()} validation errors")
            return None

        await self.fan_out(event, message)
        return self.orchestrator.maybe_reply(event)

    async def fan_out(self, event: NewMessageEvent, message: dict) -> int:
        """Send the message to every participant's private room except the sender's."""
        delivered = 0
        for user in event.chat.participants:
            if not user.id or user.id == event.sender.id:
                continue
            await self.sio.emit(MESSAGE_RECEIVED_EVENT, message, to=user.id)
            delivered += 1
        logger.debug(f"Message from {event.sender.id} in chat {event.chat.id} fanned out to {delivered} users")
        return delivered
