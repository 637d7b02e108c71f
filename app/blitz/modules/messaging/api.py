from __future__ import annotations

from flask import Blueprint, abort, jsonify, request

from app.blitz.db import db_session
from app.blitz.models import User
from app.blitz.modules.messaging.models import Conversation
from app.blitz.modules.messaging.service import (
    MessagingError,
    conversations_for_user,
    create_conversation,
    ensure_participant,
    find_conversation_with,
    mark_read,
    messages_newest_first,
    reply_in_conversation,
    send_direct_message,
    serialize_conversation,
    serialize_message,
    unread_summary,
)
from app.blitz.rbac import current_user, require_login
from app.blitz.utils import json_payload, parse_int

bp = Blueprint("messages", __name__)


def _conversation_or_abort(conversation_id: int) -> Conversation:
    s = db_session()
    convo = s.get(Conversation, conversation_id)
    if not convo:
        abort(404, description="Conversation not found")
    try:
        ensure_participant(convo, current_user())
    except MessagingError as e:
        abort(e.status_code, description=str(e))
    return convo


@bp.post("")
@require_login
def message_send():
    s = db_session()
    payload = json_payload()
    receiver_id = parse_int(payload.get("receiverId"))
    content = payload.get("content")
    if receiver_id is None or not isinstance(content, str) or not content.strip():
        abort(400, description="Receiver ID and content are required")

    receiver = s.get(User, receiver_id)
    if not receiver:
        abort(404, description="Receiver not found")

    try:
        msg = send_direct_message(s, current_user(), receiver, content)
        s.commit()
    except MessagingError as e:
        s.rollback()
        abort(e.status_code, description=str(e))
    return jsonify(serialize_message(msg)), 201


@bp.get("")
@require_login
def message_list():
    conversation_id = parse_int(request.args.get("conversationId"))
    if conversation_id is None:
        abort(400, description="Conversation ID is required")
    convo = _conversation_or_abort(conversation_id)
    rows = messages_newest_first(db_session(), convo)
    return jsonify([serialize_message(m) for m in rows])


@bp.get("/conversations")
@require_login
def conversation_list():
    s = db_session()
    u = current_user()
    return jsonify([serialize_conversation(c, u) for c in conversations_for_user(s, u)])


@bp.post("/conversations")
@require_login
def conversation_create():
    s = db_session()
    u = current_user()
    raw = json_payload().get("participantIds")
    if not isinstance(raw, list) or not raw:
        abort(400, description="Participant IDs are required")

    ids = {parse_int(x) for x in raw}
    if None in ids:
        abort(400, description="Participant IDs must be integers")
    ids.add(u.id)
    found = {row.id for row in s.query(User.id).filter(User.id.in_(ids)).all()}
    if found != ids:
        abort(404, description="User not found")

    existing = find_conversation_with(s, ids)
    if existing is not None:
        return jsonify({"id": existing.id, "message": "Conversation already exists"})

    convo = create_conversation(s, ids)
    s.commit()
    return jsonify({"id": convo.id, "message": "Conversation created successfully"}), 201


@bp.get("/unread")
@require_login
def unread():
    return jsonify(unread_summary(db_session(), current_user()))


@bp.get("/<int:conversation_id>")
@require_login
def conversation_detail(conversation_id: int):
    s = db_session()
    convo = _conversation_or_abort(conversation_id)
    mark_read(convo, current_user())
    s.commit()
    return jsonify([serialize_message(m) for m in convo.messages])


@bp.post("/<int:conversation_id>")
@require_login
def conversation_reply(conversation_id: int):
    s = db_session()
    payload = json_payload()
    content = payload.get("content")
    if not isinstance(content, str) or not content.strip():
        abort(400, description="Message content is required")
    convo = _conversation_or_abort(conversation_id)

    try:
        msgs = reply_in_conversation(s, convo, current_user(), content)
        s.commit()
    except MessagingError as e:
        s.rollback()
        abort(e.status_code, description=str(e))
    return jsonify({"message": "Message sent", "messages": [serialize_message(m) for m in msgs]})
