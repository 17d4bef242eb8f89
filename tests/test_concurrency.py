"""Concurrent responders against one alert."""

import threading

from sereno.core.chat_policies import COMPANION_WELCOME
from sereno.services import alert_service, chat_service


def test_concurrent_responders_all_recorded_one_transition(db, dispatcher, transport, session_factory, make_user, make_companion):
    owner = make_user(first_name="Sofia")
    companions = [make_companion() for _ in range(6)]
    alert, _ = alert_service.activate_alert(db, dispatcher, owner.id)
    alert_id = alert.id
    db.commit()

    barrier = threading.Barrier(len(companions))
    outcomes: dict[int, bool] = {}
    errors: list[Exception] = []
    lock = threading.Lock()

    def respond(companion_id):
        session = session_factory()
        try:
            barrier.wait()
            _, transitioned = alert_service.respond_to_alert(session, dispatcher, alert_id, companion_id)
            with lock:
                outcomes[companion_id] = transitioned
        except Exception as exc:
            with lock:
                errors.append(exc)
        finally:
            session.close()

    threads = [threading.Thread(target=respond, args=(c.id,)) for c in companions]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)

    assert errors == []
    assert len(outcomes) == len(companions)
    assert sum(outcomes.values()) == 1

    db.expire_all()
    assert sorted(alert_service.get_responder_ids(db, alert_id)) == sorted(c.id for c in companions)
    assert alert_service.get_alert(db, alert_id, owner).status == "RESPONDED"

    channel = chat_service.get_emergency_channel(db, alert_id)
    assert set(chat_service.get_participant_ids(db, channel.id)) == {owner.id, *(c.id for c in companions)}
    contents = [m["content"] for m in chat_service.list_messages(db, channel.id, owner.id, limit=200)]
    assert contents.count(COMPANION_WELCOME) == 1
    assert sum(c.startswith("Emergency information") for c in contents) == 1
    assert sum(c.endswith("joined the chat.") for c in contents) == len(companions)

    db.commit()
    dispatcher.drain()
    assert transport.events_for(owner.id).count("emergency.companion_responded") == 1


def test_concurrent_resolves_archive_once(db, dispatcher, session_factory, make_user, make_companion):
    owner = make_user()
    responder = make_companion()
    alert, _ = alert_service.activate_alert(db, dispatcher, owner.id)
    alert_service.respond_to_alert(db, dispatcher, alert.id, responder.id)
    alert_id = alert.id
    db.commit()

    barrier = threading.Barrier(2)
    outcomes: list[bool] = []
    errors: list[Exception] = []

    def resolve(actor_id):
        session = session_factory()
        try:
            barrier.wait()
            _, resolved = alert_service.resolve_alert(session, dispatcher, alert_id, actor_id)
            outcomes.append(resolved)
        except Exception as exc:
            errors.append(exc)
        finally:
            session.close()

    threads = [threading.Thread(target=resolve, args=(uid,)) for uid in (owner.id, responder.id)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)

    assert errors == []
    assert sorted(outcomes) == [False, True]

    db.expire_all()
    channel = chat_service.get_emergency_channel(db, alert_id)
    contents = [m["content"] for m in chat_service.get_emergency_history(db, alert_id, owner.id)]
    assert channel.is_archived
    assert sum(c.startswith("Emergency resolved.") for c in contents) == 1
