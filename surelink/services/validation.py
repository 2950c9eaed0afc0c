import html
import re
from typing import Any

from pydantic import ValidationError

from surelink.core.errors import InvalidMessageError, InvalidPositionError
from surelink.core.proximity_config import (
    BANNED_WORDS,
    MAX_MESSAGE_LENGTH,
    MAX_NICKNAME_LENGTH,
)
from surelink.schemas.realtime import ChatMessagePayload, UpdateLocationPayload
from surelink.utils.geo import Position

_TAG_RE = re.compile(r"<[^>]*>")


def _strip_tags(value: str) -> str:
    return _TAG_RE.sub("", value)


def _escape(value: str) -> str:
    return html.escape(value, quote=True).replace("/", "&#x2F;")


def sanitize_string(value: Any) -> str:
    """Drop HTML tags, then escape whatever markup characters remain."""
    if not isinstance(value, str):
        return ""
    return _escape(_strip_tags(value)).strip()


def display_name_for(connection_id: str, nickname: str | None) -> str:
    # cut before escaping so an entity is never split
    raw = _strip_tags(nickname).strip()[:MAX_NICKNAME_LENGTH] if isinstance(nickname, str) else ""
    return _escape(raw.strip()) or connection_id[:5]


def parse_location(payload: Any) -> tuple[Position, str | None]:
    if not isinstance(payload, dict):
        raise InvalidPositionError()
    try:
        data = UpdateLocationPayload.model_validate(payload)
    except ValidationError:
        raise InvalidPositionError("緯度経度は数値である必要があります")

    # range is checked by PresenceStore.upsert
    return Position(latitude=float(data.lat), longitude=float(data.lng)), data.nickname


def validate_message(payload: Any) -> ChatMessagePayload:
    if not isinstance(payload, dict):
        raise InvalidMessageError()
    try:
        msg = ChatMessagePayload.model_validate(payload)
    except ValidationError:
        raise InvalidMessageError()

    if not msg.user.strip():
        raise InvalidMessageError("ニックネームが必要です")
    if not msg.text.strip():
        raise InvalidMessageError("メッセージが必要です")
    if len(msg.text) > MAX_MESSAGE_LENGTH:
        raise InvalidMessageError(f"メッセージは{MAX_MESSAGE_LENGTH}文字以内にしてください")
    if len(msg.user) > MAX_NICKNAME_LENGTH:
        raise InvalidMessageError(f"ニックネームは{MAX_NICKNAME_LENGTH}文字以内にしてください")

    lower_text = msg.text.lower()
    if any(word in lower_text for word in BANNED_WORDS):
        raise InvalidMessageError("不適切な内容が含まれています")

    return msg


def sanitize_message(msg: ChatMessagePayload) -> dict:
    return {
        "user": sanitize_string(msg.user),
        "text": sanitize_string(msg.text),
        "id": msg.id,
    }
