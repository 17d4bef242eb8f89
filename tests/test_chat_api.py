"""Chat API tests."""


def _emergency(client, owner, companion, auth_headers):
    alert_id = client.post("/emergency/panic", headers=auth_headers(owner), json={}).json()["id"]
    channel_id = client.post(f"/emergency/alert/{alert_id}/respond", headers=auth_headers(companion)).json()["channel_id"]
    return alert_id, channel_id


def test_emergency_chat_messages(client, make_user, make_companion, auth_headers):
    owner = make_user(first_name="Clara")
    companion = make_companion()
    outsider = make_user()
    _, channel_id = _emergency(client, owner, companion, auth_headers)

    r = client.post(f"/chat/channel/{channel_id}/messages", headers=auth_headers(owner), json={"content": "thank you"})
    assert r.status_code == 201
    assert "id" in r.json()

    long_ok = client.post(
        f"/chat/channel/{channel_id}/messages", headers=auth_headers(companion), json={"content": "a" * 5000}
    )
    assert long_ok.status_code == 201
    too_long = client.post(
        f"/chat/channel/{channel_id}/messages", headers=auth_headers(companion), json={"content": "a" * 5001}
    )
    assert too_long.status_code == 400

    messages = client.get(f"/chat/channel/{channel_id}/messages", headers=auth_headers(companion))
    assert messages.status_code == 200
    body = messages.json()
    assert body[-2]["content"] == "thank you"
    assert body[-2]["sender"] == {"id": owner.id, "name": "Clara", "role": "user"}
    assert body[0]["sender"]["role"] == "SYSTEM"
    assert body[0]["sender"]["id"] is None

    assert client.get(f"/chat/channel/{channel_id}/messages", headers=auth_headers(outsider)).status_code == 403
    assert (
        client.post(
            f"/chat/channel/{channel_id}/messages", headers=auth_headers(outsider), json={"content": "hi"}
        ).status_code
        == 403
    )
    assert client.get("/chat/channel/987654321/messages", headers=auth_headers(owner)).status_code == 404
    assert (
        client.get(f"/chat/channel/{channel_id}/messages?limit=500", headers=auth_headers(owner)).status_code == 422
    )


def test_direct_channel_limits(client, make_user, auth_headers):
    a = make_user()
    b = make_user()
    r = client.post("/chat/channels", headers=auth_headers(a), json={"type": "INDIVIDUAL", "participant_ids": [b.id]})
    assert r.status_code == 201
    channel_id = r.json()["id"]
    assert set(r.json()["participant_ids"]) == {a.id, b.id}

    ok = client.post(f"/chat/channel/{channel_id}/messages", headers=auth_headers(b), json={"content": "a" * 2000})
    assert ok.status_code == 201
    too_long = client.post(f"/chat/channel/{channel_id}/messages", headers=auth_headers(b), json={"content": "a" * 2001})
    assert too_long.status_code == 400

    channels = client.get("/chat/channels", headers=auth_headers(a)).json()
    mine = [c for c in channels if c["id"] == channel_id][0]
    assert mine["last_message"]["content"] == "a" * 2000

    emergency = client.post("/chat/channels", headers=auth_headers(a), json={"type": "EMERGENCY", "participant_ids": [b.id]})
    assert emergency.status_code == 403


def test_escalate_participants_and_history(client, make_user, make_companion, auth_headers):
    owner = make_user()
    companion = make_companion()
    extra = make_companion()
    outsider = make_user()
    alert_id, channel_id = _emergency(client, owner, companion, auth_headers)

    r = client.post(f"/chat/channel/{channel_id}/escalate", headers=auth_headers(companion), json={"kind": "crisis_center"})
    assert r.status_code == 200
    assert r.json()["kind"] == "crisis_center"
    assert client.post(
        f"/chat/channel/{channel_id}/escalate", headers=auth_headers(owner), json={"kind": "firefighters"}
    ).status_code == 422
    assert client.post(
        f"/chat/channel/{channel_id}/escalate", headers=auth_headers(outsider), json={"kind": "police"}
    ).status_code == 403

    added = client.post(f"/chat/channel/{channel_id}/companions", headers=auth_headers(owner), json={"companion_ids": [extra.id]})
    assert added.status_code == 200
    assert added.json()["added"] == 1

    removed = client.delete(f"/chat/channel/{channel_id}/participants/{extra.id}", headers=auth_headers(companion))
    assert removed.status_code == 200
    assert removed.json()["changed"] is True
    assert client.delete(
        f"/chat/channel/{channel_id}/participants/{owner.id}", headers=auth_headers(companion)
    ).status_code == 403

    rejoined = client.post(f"/chat/channel/{channel_id}/participants", headers=auth_headers(owner), json={"user_id": extra.id})
    assert rejoined.json()["changed"] is True

    history = client.get(f"/chat/emergency/{alert_id}/history", headers=auth_headers(owner))
    assert history.status_code == 200
    contents = [m["content"] for m in history.json()]
    assert any(c.startswith("Crisis center contacted.") for c in contents)
    assert client.get(f"/chat/emergency/{alert_id}/history", headers=auth_headers(outsider)).status_code == 403

    client.put(f"/emergency/alert/{alert_id}/resolve", headers=auth_headers(owner))
    closed = client.post(f"/chat/channel/{channel_id}/messages", headers=auth_headers(owner), json={"content": "one more thing"})
    assert closed.status_code == 403
    assert client.post(
        f"/chat/channel/{channel_id}/escalate", headers=auth_headers(owner), json={"kind": "police"}
    ).status_code == 403
