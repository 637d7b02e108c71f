from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import func

from app.blitz.modules.messaging.models import Conversation, Message, Participant
from app.blitz.utils import iso, user_summary

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.blitz.models import User

UNREAD_PREVIEW_LIMIT = 5


class MessagingError(ValueError):
    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


def conversations_for_user(s: "Session", user: "User") -> list[Conversation]:
    """Caller's conversations, most recent activity first."""
    return (
        s.query(Conversation)
        .join(Participant, Participant.conversation_id == Conversation.id)
        .filter(Participant.user_id == user.id)
        .order_by(
            func.coalesce(Conversation.last_message_at, Conversation.created_at).desc(),
            Conversation.id.desc(),
        )
        .all()
    )


def find_conversation_with(s: "Session", user_ids: Iterable[int]) -> Conversation | None:
    """Conversation whose participant set is exactly `user_ids`."""
    wanted = set(user_ids)
    anchor = min(wanted)
    candidates = (
        s.query(Conversation)
        .join(Participant, Participant.conversation_id == Conversation.id)
        .filter(Participant.user_id == anchor)
        .order_by(Conversation.id.asc())
        .all()
    )
    for convo in candidates:
        if convo.participant_ids == wanted:
            return convo
    return None


def create_conversation(s: "Session", user_ids: Iterable[int]) -> Conversation:
    now = datetime.utcnow()
    convo = Conversation(created_at=now, updated_at=now)
    s.add(convo)
    for uid in sorted(set(user_ids)):
        convo.participants.append(Participant(user_id=uid, has_unread=False, created_at=now, updated_at=now))
    s.flush()
    return convo


def participant_row(convo: Conversation, user: "User") -> Participant | None:
    for p in convo.participants:
        if p.user_id == user.id:
            return p
    return None


def ensure_participant(convo: Conversation, user: "User") -> Participant:
    p = participant_row(convo, user)
    if p is None:
        raise MessagingError("Not a participant in this conversation", status_code=403)
    return p


def _post(s: "Session", convo: Conversation, sender: "User", receiver_id: int, content: str, now: datetime) -> Message:
    msg = Message(
        content=content,
        sender_id=sender.id,
        receiver_id=receiver_id,
        conversation=convo,
        read=False,
        created_at=now,
    )
    s.add(msg)
    for p in convo.participants:
        if p.user_id == receiver_id:
            p.has_unread = True
            p.updated_at = now
    convo.last_message_at = now
    convo.updated_at = now
    return msg


def send_direct_message(s: "Session", sender: "User", receiver: "User", content: str) -> Message:
    """Message `receiver`, reusing (or opening) the two-party conversation between them."""
    content = (content or "").strip()
    if not content:
        raise MessagingError("Message content is required")
    if receiver.id == sender.id:
        raise MessagingError("You cannot message yourself")

    convo = find_conversation_with(s, {sender.id, receiver.id})
    if convo is None:
        convo = create_conversation(s, {sender.id, receiver.id})
    msg = _post(s, convo, sender, receiver.id, content, datetime.utcnow())
    s.flush()
    return msg


def reply_in_conversation(s: "Session", convo: Conversation, sender: "User", content: str) -> list[Message]:
    """One message per other participant."""
    content = (content or "").strip()
    if not content:
        raise MessagingError("Message content is required")
    ensure_participant(convo, sender)

    others = sorted(convo.participant_ids - {sender.id})
    if not others:
        raise MessagingError("No other participants in this conversation")

    now = datetime.utcnow()
    msgs = [_post(s, convo, sender, uid, content, now) for uid in others]
    s.flush()
    return msgs


def mark_read(convo: Conversation, user: "User") -> int:
    """Mark the caller's received messages read and clear their unread flag. Returns messages touched."""
    touched = 0
    for m in convo.messages:
        if m.receiver_id == user.id and not m.read:
            m.read = True
            touched += 1
    p = participant_row(convo, user)
    if p is not None and p.has_unread:
        p.has_unread = False
        p.updated_at = datetime.utcnow()
    return touched


def messages_newest_first(s: "Session", convo: Conversation) -> list[Message]:
    return (
        s.query(Message)
        .filter(Message.conversation_id == convo.id)
        .order_by(Message.created_at.desc(), Message.id.desc())
        .all()
    )


def unread_summary(s: "Session", user: "User") -> dict:
    rows = (
        s.query(Participant)
        .filter(Participant.user_id == user.id, Participant.has_unread.is_(True))
        .order_by(Participant.updated_at.desc())
        .all()
    )
    out = []
    for p in rows:
        convo = p.conversation
        unread = (
            s.query(Message)
            .filter(
                Message.conversation_id == convo.id,
                Message.receiver_id == user.id,
                Message.read.is_(False),
            )
            .order_by(Message.created_at.desc(), Message.id.desc())
            .limit(UNREAD_PREVIEW_LIMIT)
            .all()
        )
        out.append(
            {
                "id": convo.id,
                "lastMessage": _message_preview(unread[0]) if unread else None,
                "messages": [serialize_message(m) for m in unread],
                "participants": _others(convo, user),
                "updatedAt": iso(convo.updated_at),
            }
        )
    return {"unreadCount": len(rows), "unreadConversations": out}


def _others(convo: Conversation, user: "User") -> list[dict]:
    return [user_summary(p.user) for p in convo.participants if p.user_id != user.id]


def _message_preview(msg: Message) -> dict:
    return {
        "id": msg.id,
        "content": msg.content,
        "createdAt": iso(msg.created_at),
        "senderId": msg.sender_id,
    }


def serialize_message(msg: Message) -> dict:
    return {
        "id": msg.id,
        "content": msg.content,
        "senderId": msg.sender_id,
        "receiverId": msg.receiver_id,
        "conversationId": msg.conversation_id,
        "read": msg.read,
        "createdAt": iso(msg.created_at),
        "sender": user_summary(msg.sender, with_email=False),
    }


def serialize_conversation(convo: Conversation, user: "User") -> dict:
    last = convo.messages[-1] if convo.messages else None
    p = participant_row(convo, user)
    return {
        "id": convo.id,
        "participants": _others(convo, user),
        "lastMessage": _message_preview(last) if last else None,
        "hasUnread": bool(p and p.has_unread),
        "lastMessageAt": iso(convo.last_message_at),
        "updatedAt": iso(convo.updated_at),
    }
