"""Test configuration and fixtures."""
import pytest

from ai_client import AIReplyError
from backend import MessageStoreError
from chat_events import ChatSocketHandler
from context import AppContext

AI_EMAIL = "ai@bot"


class FakeSocketServer:
    """Stands in for socketio.AsyncServer: records rooms and emits."""

    def __init__(self, fail_on_room=None):
        self.handlers = {}
        self.rooms = {}
        self.enter_calls = []
        self.emitted = []
        self.fail_on_room = fail_on_room

    def on(self, event, handler=None):
        self.handlers[event] = handler

    async def enter_room(self, sid, room, namespace=None):
        self.enter_calls.append((sid, room))
        self.rooms.setdefault(sid, set()).add(room)

    async def emit(self, event, data=None, to=None, room=None, **kwargs):
        target = to if to is not None else room
        if self.fail_on_room is not None and target == self.fail_on_room:
            raise ConnectionError(f"emit to {target} failed")
        self.emitted.append((event, data, target))

    def emits(self, event=None, to=None):
        return [
            (e, d, t) for e, d, t in self.emitted
            if (event is None or e == event) and (to is None or t == to)
        ]


class FakeStore:
    def __init__(self, users=None, fail_create=False, fail_populate=False):
        self.users = users or {}
        self.created = []
        self.fail_create = fail_create
        self.fail_populate = fail_populate

    async def create(self, sender, content, chat):
        if self.fail_create:
            raise MessageStoreError("insert failed")
        record = {"_id": f"m{len(self.created) + 1}", "sender": sender, "content": content, "chat": chat}
        self.created.append(record)
        return record

    async def populate(self, record):
        if self.fail_populate:
            raise MessageStoreError("populate failed")
        user = self.users.get(record["sender"], {})
        return {
            **record,
            "sender": {"_id": record["sender"], "name": user.get("name"), "email": user.get("email")},
            "chat": {"_id": record["chat"], "users": list(self.users)},
        }

    def close(self):
        pass


class FakeGenerator:
    def __init__(self, reply="Hello from the AI", fail=False):
        self.reply = reply
        self.fail = fail
        self.calls = []

    async def generate_reply(self, text):
        self.calls.append(text)
        if self.fail:
            raise AIReplyError("provider down")
        return self.reply

    async def close(self):
        pass


def make_message(sender_id="u1", content="hi", chat_id="c1", users=None):
    if users is None:
        users = [{"_id": "u1", "email": "u1@example.com"}, {"_id": "u2", "email": AI_EMAIL}]
    return {
        "sender": {"_id": sender_id},
        "content": content,
        "chat": {"_id": chat_id, "users": users},
    }


@pytest.fixture
def sio():
    return FakeSocketServer()


@pytest.fixture
def generator():
    return FakeGenerator()


@pytest.fixture
def store():
    return FakeStore(users={"u2": {"name": "Bot", "email": AI_EMAIL}})


@pytest.fixture
def context(store, generator):
    return AppContext(store=store, generator=generator, ai_user_email=AI_EMAIL)


@pytest.fixture
def handler(sio, context):
    return ChatSocketHandler(sio, context)
