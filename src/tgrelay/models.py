from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


# ============================================================================
# Telegram Bot API payloads (only the fields we read)
# ============================================================================


class TelegramChat(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int
    type: str | None = None
    username: str | None = None


class TelegramMessage(BaseModel):
    model_config = ConfigDict(extra="ignore")

    message_id: int
    chat: TelegramChat
    text: str | None = None
    reply_to_message: TelegramMessage | None = None


class TelegramUpdate(BaseModel):
    model_config = ConfigDict(extra="ignore")

    update_id: int
    message: TelegramMessage | None = None


# ============================================================================
# Transport-neutral inbound message
# ============================================================================


class InboundMessage(BaseModel):
    """One message delivered by the chat transport."""

    model_config = ConfigDict(frozen=True)

    channel: str = Field(..., description="Origin chat id, as a string")
    text: str | None = Field(default=None, description="Message text; None for media-only messages")
    quoted_text: str | None = Field(
        default=None, description="Text of the message this one replies to, if any"
    )

    @classmethod
    def from_telegram(cls, message: TelegramMessage) -> InboundMessage:
        quoted = message.reply_to_message.text if message.reply_to_message is not None else None
        return cls(channel=str(message.chat.id), text=message.text, quoted_text=quoted)
