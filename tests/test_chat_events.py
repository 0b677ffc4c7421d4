import pytest

from conftest import AI_EMAIL, make_message


def test_register_binds_every_event(handler, sio):
    handler.register()
    assert set(sio.handlers) == {"connect", "disconnect", "setup", "join chat", "new message"}


@pytest.mark.asyncio
async def test_setup_joins_private_room_and_acknowledges(handler, sio):
    await handler.on_connect("s1", {})
    await handler.on_setup("s1", {"_id": "u1", "name": "Alice"})

    assert sio.rooms["s1"] == {"u1"}
    assert sio.emits("connected", to="s1") == [("connected", None, "s1")]
    assert handler.registry.connections_for("u1") == {"s1"}


@pytest.mark.asyncio
@pytest.mark.parametrize("user", [None, {}, {"_id": ""}, {"name": "no id"}, "u1"])
async def test_setup_without_user_id_is_ignored(handler, sio, user):
    await handler.on_setup("s1", user)
    assert sio.enter_calls == []
    assert sio.emitted == []


@pytest.mark.asyncio
async def test_repeated_setup_acknowledges_without_rejoining(handler, sio):
    await handler.on_setup("s1", {"_id": "u1"})
    await handler.on_setup("s1", {"_id": "u1"})
    assert sio.enter_calls == [("s1", "u1")]
    assert len(sio.emits("connected")) == 2


@pytest.mark.asyncio
async def test_join_chat_is_idempotent(handler, sio):
    await handler.on_join_chat("s1", "c1")
    await handler.on_join_chat("s1", "c1")
    assert sio.enter_calls == [("s1", "c1")]
    assert handler.registry.rooms_of("s1") == {"c1"}


@pytest.mark.asyncio
@pytest.mark.parametrize("chat_id", [None, "", 0])
async def test_join_chat_without_id_is_ignored(handler, sio, chat_id):
    await handler.on_join_chat("s1", chat_id)
    assert sio.enter_calls == []


@pytest.mark.asyncio
async def test_disconnect_drops_session(handler):
    await handler.on_connect("s1", {})
    await handler.on_setup("s1", {"_id": "u1"})
    await handler.on_disconnect("s1", "client disconnect")
    assert handler.registry.get("s1") is None
    assert handler.registry.connections_for("u1") == set()


@pytest.mark.asyncio
async def test_message_fans_out_to_private_rooms_except_sender(handler, sio):
    users = [{"_id": "u1"}, {"_id": "u2"}, {"_id": "u3"}]
    message = make_message(sender_id="u1", users=users)

    task = await handler.dispatch_message("s1", message)

    assert task is None
    received = sio.emits("message received")
    assert sorted(t for _, _, t in received) == ["u2", "u3"]
    # Original payload goes out untouched, never to the chat room
    assert all(d is message for _, d, _ in received)
    assert sio.emits(to="c1") == []


@pytest.mark.asyncio
async def test_participants_without_id_are_skipped(handler, sio):
    message = make_message(users=[{"_id": "u1"}, {"name": "ghost"}, {"_id": "u3"}])
    await handler.dispatch_message("s1", message)
    assert [t for _, _, t in sio.emits("message received")] == ["u3"]


@pytest.mark.asyncio
async def test_numeric_ids_compare_as_strings(handler, sio):
    message = make_message(sender_id=1, users=[{"_id": 1}, {"_id": 2}])
    await handler.dispatch_message("s1", message)
    assert [t for _, _, t in sio.emits("message received")] == ["2"]


@pytest.mark.asyncio
@pytest.mark.parametrize("message", [
    None,
    "hello",
    {},
    {"sender": {"_id": "u1"}, "content": "hi"},
    {"sender": {"_id": "u1"}, "content": "hi", "chat": {"_id": "c1"}},
    {"sender": {"_id": "u1"}, "content": "hi", "chat": {"_id": "c1", "users": []}},
    {"sender": {"_id": "u1"}, "content": "hi", "chat": {"_id": "c1", "users": None}},
    {"sender": {}, "content": "hi", "chat": {"_id": "c1", "users": [{"_id": "u2"}]}},
    {"content": "hi", "chat": {"_id": "c1", "users": [{"_id": "u2"}]}},
])
async def test_malformed_messages_are_dropped(handler, sio, generator, message):
    assert await handler.dispatch_message("s1", message) is None
    assert sio.emitted == []
    assert generator.calls == []


@pytest.mark.asyncio
async def test_new_message_handler_returns_no_ack(handler, generator):
    result = await handler.on_new_message("s1", make_message())
    await handler.orchestrator.drain()
    assert result is None
    assert generator.calls == ["hi"]


@pytest.mark.asyncio
async def test_setup_then_message_reaches_that_connection(handler, sio):
    await handler.on_connect("s2", {})
    await handler.on_setup("s2", {"_id": "u2", "email": AI_EMAIL})
    await handler.dispatch_message("s1", make_message(sender_id="u1"))
    await handler.orchestrator.drain()

    private = sio.emits("message received", to="u2")
    assert len(private) == 1
    assert "u2" in sio.rooms["s2"]


@pytest.mark.asyncio
async def test_non_string_content_is_still_delivered(handler, sio):
    message = make_message(content=42)
    task = await handler.dispatch_message("s1", message)
    await handler.orchestrator.drain()

    assert [t for _, _, t in sio.emits("message received") if t != "c1"] == ["u2"]
    assert task is not None
    assert handler.context.generator.calls == ["42"]


@pytest.mark.asyncio
async def test_bare_id_participants_are_skipped_not_fatal(handler, sio):
    message = make_message(users=[{"_id": "u1"}, "u4", {"_id": "u3"}])
    await handler.dispatch_message("s1", message)
    assert [t for _, _, t in sio.emits("message received")] == ["u3"]


@pytest.mark.asyncio
async def test_non_string_user_fields_are_still_delivered(handler, sio):
    message = make_message(users=[{"_id": "u1", "email": ["a", "b"]}, {"_id": "u2", "name": {"first": "Bo"}}])
    message["sender"]["name"] = {"first": "Ann"}
    await handler.dispatch_message("s1", message)
    assert [t for _, _, t in sio.emits("message received")] == ["u2"]
    assert sio.emits("message received")[0][1] is message


@pytest.mark.asyncio
async def test_disconnect_of_unknown_connection_is_noop(handler):
    await handler.on_disconnect("never-connected")
    assert len(handler.registry) == 0
