def test_direct_message_opens_one_conversation(creator, sponsor):
    creator_id, creator_client = creator
    sponsor_id, sponsor_client = sponsor

    r = sponsor_client.post("/api/messages", json={"receiverId": creator_id, "content": "Hi there"})
    assert r.status_code == 201
    first = r.json
    assert first["senderId"] == sponsor_id
    assert first["receiverId"] == creator_id
    assert first["read"] is False

    r = sponsor_client.post("/api/messages", json={"receiverId": creator_id, "content": "Following up"})
    assert r.status_code == 201
    assert r.json["conversationId"] == first["conversationId"]

    convos = creator_client.get("/api/messages/conversations").json
    assert len(convos) == 1
    assert convos[0]["hasUnread"] is True
    assert convos[0]["lastMessage"]["content"] == "Following up"
    assert convos[0]["participants"][0]["id"] == sponsor_id


def test_send_validation(creator):
    creator_id, c = creator
    assert c.post("/api/messages", json={"content": "hi"}).status_code == 400
    assert c.post("/api/messages", json={"receiverId": creator_id, "content": "   "}).status_code == 400
    assert c.post("/api/messages", json={"receiverId": 9999, "content": "hi"}).status_code == 404
    r = c.post("/api/messages", json={"receiverId": creator_id, "content": "me"})
    assert r.status_code == 400


def test_unread_and_mark_read(creator, sponsor):
    creator_id, creator_client = creator
    _, sponsor_client = sponsor
    convo_id = sponsor_client.post("/api/messages", json={"receiverId": creator_id, "content": "Hello"}).json["conversationId"]

    r = creator_client.get("/api/messages/unread")
    assert r.status_code == 200
    assert r.json["unreadCount"] == 1
    unread = r.json["unreadConversations"][0]
    assert unread["id"] == convo_id
    assert unread["lastMessage"]["content"] == "Hello"

    # Sender has nothing unread
    assert sponsor_client.get("/api/messages/unread").json["unreadCount"] == 0

    r = creator_client.get(f"/api/messages/{convo_id}")
    assert r.status_code == 200
    assert [m["content"] for m in r.json] == ["Hello"]

    assert creator_client.get("/api/messages/unread").json["unreadCount"] == 0
    msgs = creator_client.get(f"/api/messages?conversationId={convo_id}").json
    assert msgs[0]["read"] is True


def test_reply_goes_to_every_other_participant(creator, sponsor, make_user, login_as):
    creator_id, creator_client = creator
    sponsor_id, sponsor_client = sponsor
    third_id = make_user("third@example.com", name="Third")
    third_client = login_as("third@example.com")

    r = creator_client.post("/api/messages/conversations", json={"participantIds": [sponsor_id, third_id]})
    assert r.status_code == 201
    convo_id = r.json["id"]

    # Same participant set returns the existing conversation
    r = sponsor_client.post("/api/messages/conversations", json={"participantIds": [creator_id, third_id]})
    assert r.status_code == 200
    assert r.json["id"] == convo_id

    r = creator_client.post(f"/api/messages/{convo_id}", json={"content": "Group hello"})
    assert r.status_code == 200
    assert sorted(m["receiverId"] for m in r.json["messages"]) == sorted([sponsor_id, third_id])

    assert third_client.get("/api/messages/unread").json["unreadCount"] == 1
    assert sponsor_client.get("/api/messages/unread").json["unreadCount"] == 1
    assert creator_client.get("/api/messages/unread").json["unreadCount"] == 0


def test_conversation_access_is_participant_only(creator, sponsor, make_user, login_as):
    creator_id, creator_client = creator
    _, sponsor_client = sponsor
    make_user("outsider@example.com")
    outsider = login_as("outsider@example.com")
    convo_id = sponsor_client.post("/api/messages", json={"receiverId": creator_id, "content": "Private"}).json["conversationId"]

    assert outsider.get(f"/api/messages/{convo_id}").status_code == 403
    assert outsider.get(f"/api/messages?conversationId={convo_id}").status_code == 403
    assert outsider.post(f"/api/messages/{convo_id}", json={"content": "hey"}).status_code == 403
    assert outsider.get("/api/messages/9999").status_code == 404
    assert outsider.get("/api/messages").status_code == 400


def test_create_conversation_validation(creator):
    _, c = creator
    assert c.post("/api/messages/conversations", json={}).status_code == 400
    assert c.post("/api/messages/conversations", json={"participantIds": ["abc"]}).status_code == 400
    assert c.post("/api/messages/conversations", json={"participantIds": [9999]}).status_code == 404


def test_message_and_conversation_ordering(creator, sponsor, make_user, login_as):
    creator_id, creator_client = creator
    _, sponsor_client = sponsor
    make_user("third@example.com", name="Third")
    third_client = login_as("third@example.com")

    def send(client, content):
        r = client.post("/api/messages", json={"receiverId": creator_id, "content": content})
        assert r.status_code == 201
        return r.json["conversationId"]

    first_convo = send(sponsor_client, "one")
    send(sponsor_client, "two")
    second_convo = send(third_client, "three")

    convos = creator_client.get("/api/messages/conversations").json
    assert [c["id"] for c in convos] == [second_convo, first_convo]

    send(sponsor_client, "four")
    convos = creator_client.get("/api/messages/conversations").json
    assert [c["id"] for c in convos] == [first_convo, second_convo]
    assert convos[0]["lastMessage"]["content"] == "four"

    msgs = creator_client.get(f"/api/messages?conversationId={first_convo}").json
    assert [m["content"] for m in msgs] == ["four", "two", "one"]

    msgs = creator_client.get(f"/api/messages/{first_convo}").json
    assert [m["content"] for m in msgs] == ["one", "two", "four"]
