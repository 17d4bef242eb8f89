"""Emergency channel service tests."""

import logging

import pytest
from sqlalchemy import select

from sereno.core.chat_policies import (
    ADDITIONAL_SUPPORT,
    CHANNEL_CREATED,
    EMERGENCY_CHANNEL_CREATED,
    ESCALATION_MESSAGES,
    SYSTEM,
    ChannelType,
    EscalationKind,
    MessageType,
    UserSender,
)
from sereno.core.errors import AccessDenied, MessageRejected, NotFound
from sereno.models import ChatMessage, EscalationEvent
from sereno.services import alert_service, chat_service


def _emergency_channel(db, dispatcher, owner):
    alert, _ = alert_service.activate_alert(db, dispatcher, owner.id)
    return alert, chat_service.get_emergency_channel(db, alert.id)


def test_ensure_emergency_channel_is_idempotent(db, dispatcher, make_user):
    owner = make_user()
    alert, channel = _emergency_channel(db, dispatcher, owner)

    again, created = chat_service.ensure_emergency_channel(db, alert)
    assert not created
    assert again.id == channel.id
    assert channel.type == ChannelType.EMERGENCY.value
    assert channel.emergency_alert_id == alert.id

    messages = chat_service.list_messages(db, channel.id, owner.id)
    assert [m["content"] for m in messages] == [EMERGENCY_CHANNEL_CREATED]
    assert messages[0]["sender"] == {"id": None, "name": "System", "role": "SYSTEM"}
    assert messages[0]["type"] == "SYSTEM"


def test_non_participant_cannot_read_or_write(db, dispatcher, make_user):
    owner = make_user()
    outsider = make_user()
    _, channel = _emergency_channel(db, dispatcher, owner)

    with pytest.raises(AccessDenied):
        chat_service.list_messages(db, channel.id, outsider.id)
    with pytest.raises(AccessDenied):
        chat_service.send_message(db, channel.id, UserSender(outsider.id), "hi")
    with pytest.raises(NotFound):
        chat_service.list_messages(db, 987654321, owner.id)


def test_user_message_is_moderated_and_rendered(db, dispatcher, transport, make_user, make_companion):
    owner = make_user(first_name="Lucia")
    companion = make_companion()
    alert, channel = _emergency_channel(db, dispatcher, owner)
    alert_service.respond_to_alert(db, dispatcher, alert.id, companion.id)

    message = chat_service.send_message(db, channel.id, UserSender(owner.id), "I feel unsafe", notifier=dispatcher)
    assert message.sender_kind == "USER"
    assert message.sender_id == owner.id
    assert not message.flagged

    last = chat_service.list_messages(db, channel.id, companion.id)[-1]
    assert last["content"] == "I feel unsafe"
    assert last["sender"] == {"id": owner.id, "name": "Lucia", "role": "user"}

    with pytest.raises(MessageRejected):
        chat_service.send_message(db, channel.id, UserSender(owner.id), "   ")
    with pytest.raises(AccessDenied):
        chat_service.send_message(db, channel.id, UserSender(owner.id), "fake system", MessageType.SYSTEM)

    db.commit()
    dispatcher.drain()
    assert "chat.message" in transport.events_for(companion.id)
    assert "chat.message" not in transport.events_for(owner.id)


def test_emergency_channel_length_limits(db, dispatcher, make_user):
    owner = make_user()
    _, channel = _emergency_channel(db, dispatcher, owner)

    chat_service.send_message(db, channel.id, UserSender(owner.id), "a" * 5000)
    with pytest.raises(MessageRejected):
        chat_service.send_message(db, channel.id, UserSender(owner.id), "a" * 5001)
    # Blocked terms are not filtered in emergencies
    chat_service.send_message(db, channel.id, UserSender(owner.id), "someone tried a scam on me")


def test_self_harm_message_is_stored_flagged(db, dispatcher, make_user, caplog):
    owner = make_user()
    _, channel = _emergency_channel(db, dispatcher, owner)

    with caplog.at_level(logging.WARNING):
        message = chat_service.send_message(db, channel.id, UserSender(owner.id), "I want to end my life")
    assert message.flagged
    assert f"channel={channel.id}" in caplog.text
    stored = db.execute(select(ChatMessage).where(ChatMessage.id == message.id)).scalar_one()
    assert stored.flagged


def test_system_sender_bypasses_membership_and_moderation(db, make_user):
    a = make_user()
    b = make_user()
    channel = chat_service.create_channel(db, ChannelType.INDIVIDUAL, [b.id], a.id)

    message = chat_service.send_message(db, channel.id, SYSTEM, "x" * 6000, MessageType.SYSTEM)
    assert message.sender_kind == "SYSTEM"
    assert message.sender_id is None


def test_create_channel(db, make_user):
    a = make_user()
    b = make_user()
    c = make_user()

    individual = chat_service.create_channel(db, ChannelType.INDIVIDUAL, [b.id], a.id)
    assert set(chat_service.get_participant_ids(db, individual.id)) == {a.id, b.id}
    assert [m["content"] for m in chat_service.list_messages(db, individual.id, a.id)] == [CHANNEL_CREATED]

    group = chat_service.create_channel(db, ChannelType.GROUP, [b.id, c.id, b.id], a.id)
    assert set(chat_service.get_participant_ids(db, group.id)) == {a.id, b.id, c.id}

    with pytest.raises(AccessDenied):
        chat_service.create_channel(db, ChannelType.EMERGENCY, [b.id], a.id)
    with pytest.raises(MessageRejected):
        chat_service.create_channel(db, ChannelType.INDIVIDUAL, [b.id, c.id], a.id)
    with pytest.raises(NotFound):
        chat_service.create_channel(db, ChannelType.GROUP, [987654321], a.id)


def test_default_channel_limits_and_blocked_terms(db, make_user):
    a = make_user()
    b = make_user()
    channel = chat_service.create_channel(db, ChannelType.INDIVIDUAL, [b.id], a.id)

    chat_service.send_message(db, channel.id, UserSender(a.id), "a" * 2000)
    with pytest.raises(MessageRejected):
        chat_service.send_message(db, channel.id, UserSender(a.id), "a" * 2001)
    with pytest.raises(MessageRejected):
        chat_service.send_message(db, channel.id, UserSender(a.id), "buy now, this is not spam")


def test_add_and_remove_participants(db, dispatcher, make_user):
    owner = make_user()
    friend = make_user(first_name="Pablo")
    outsider = make_user()
    _, channel = _emergency_channel(db, dispatcher, owner)

    assert chat_service.add_participant(db, channel.id, friend.id, UserSender(owner.id))
    assert not chat_service.add_participant(db, channel.id, friend.id, UserSender(owner.id))
    contents = [m["content"] for m in chat_service.list_messages(db, channel.id, owner.id)]
    assert contents.count("Pablo joined the chat.") == 1

    with pytest.raises(AccessDenied):
        chat_service.add_participant(db, channel.id, outsider.id, UserSender(outsider.id))
    with pytest.raises(AccessDenied):
        chat_service.remove_participant(db, channel.id, owner.id, UserSender(friend.id))

    assert chat_service.remove_participant(db, channel.id, friend.id, UserSender(owner.id))
    assert not chat_service.remove_participant(db, channel.id, friend.id, SYSTEM)
    contents = [m["content"] for m in chat_service.list_messages(db, channel.id, owner.id)]
    assert "Pablo left the chat." in contents
    assert not chat_service.is_participant(db, channel.id, friend.id)


def test_archived_channel_refuses_new_participants(db, dispatcher, make_user):
    owner = make_user()
    late = make_user()
    alert, channel = _emergency_channel(db, dispatcher, owner)
    alert_service.resolve_alert(db, dispatcher, alert.id, owner.id)

    with pytest.raises(AccessDenied):
        chat_service.add_participant(db, channel.id, late.id, UserSender(owner.id))
    assert not chat_service.archive_channel(db, channel.id, owner.id)


def test_add_companions_posts_support_message(db, dispatcher, make_user, make_companion):
    owner = make_user()
    helpers = [make_companion(), make_companion()]
    plain = make_user()
    _, channel = _emergency_channel(db, dispatcher, owner)

    added = chat_service.add_companions(db, channel.id, [h.id for h in helpers], UserSender(owner.id))
    assert added == 2
    contents = [m["content"] for m in chat_service.list_messages(db, channel.id, owner.id)]
    assert ADDITIONAL_SUPPORT.format(count=2) in contents

    with pytest.raises(NotFound):
        chat_service.add_companions(db, channel.id, [plain.id], UserSender(owner.id))


def test_escalation(db, dispatcher, transport, make_user, caplog):
    owner = make_user()
    outsider = make_user()
    friend = make_user()
    alert, channel = _emergency_channel(db, dispatcher, owner)

    with caplog.at_level(logging.WARNING):
        event = chat_service.escalate(db, channel.id, owner.id, EscalationKind.MEDICAL, notifier=dispatcher)
    assert event.kind == "medical"
    assert event.alert_id == alert.id
    assert "Emergency escalation (medical)" in caplog.text
    contents = [m["content"] for m in chat_service.list_messages(db, channel.id, owner.id)]
    assert ESCALATION_MESSAGES[EscalationKind.MEDICAL] in contents
    stored = db.execute(select(EscalationEvent).where(EscalationEvent.channel_id == channel.id)).scalars().all()
    assert len(stored) == 1

    with pytest.raises(AccessDenied):
        chat_service.escalate(db, channel.id, outsider.id, EscalationKind.POLICE)

    plain = chat_service.create_channel(db, ChannelType.INDIVIDUAL, [friend.id], owner.id)
    with pytest.raises(AccessDenied):
        chat_service.escalate(db, plain.id, owner.id, EscalationKind.POLICE)

    db.commit()
    dispatcher.drain()
    assert "chat.escalated" in transport.events_for(owner.id)


def test_list_channels_includes_last_message(db, make_user):
    a = make_user()
    b = make_user()
    channel = chat_service.create_channel(db, ChannelType.INDIVIDUAL, [b.id], a.id)
    chat_service.send_message(db, channel.id, UserSender(b.id), "see you tomorrow")

    listed = {c["id"]: c for c in chat_service.list_channels(db, a.id)}
    assert listed[channel.id]["last_message"]["content"] == "see you tomorrow"
    assert set(listed[channel.id]["participant_ids"]) == {a.id, b.id}


def test_message_pagination_is_chronological(db, make_user):
    a = make_user()
    b = make_user()
    channel = chat_service.create_channel(db, ChannelType.INDIVIDUAL, [b.id], a.id)
    for i in range(5):
        chat_service.send_message(db, channel.id, UserSender(a.id), f"msg {i}")

    latest = chat_service.list_messages(db, channel.id, a.id, limit=2)
    assert [m["content"] for m in latest] == ["msg 3", "msg 4"]
    older = chat_service.list_messages(db, channel.id, a.id, limit=2, offset=2)
    assert [m["content"] for m in older] == ["msg 1", "msg 2"]


def test_emergency_history_access(db, dispatcher, make_user):
    owner = make_user()
    outsider = make_user()
    alert, channel = _emergency_channel(db, dispatcher, owner)
    chat_service.send_message(db, channel.id, UserSender(owner.id), "hello")

    history = chat_service.get_emergency_history(db, alert.id, owner.id)
    assert [m["content"] for m in history][-1] == "hello"
    with pytest.raises(AccessDenied):
        chat_service.get_emergency_history(db, alert.id, outsider.id)
    with pytest.raises(NotFound):
        chat_service.get_emergency_history(db, 987654321, owner.id)
