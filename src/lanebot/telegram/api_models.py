from __future__ import annotations

import enum
from typing import Any

import msgspec

__all__ = [
    "BusinessConnection",
    "BusinessMessagesDeleted",
    "CallbackQuery",
    "Chat",
    "ChatBoost",
    "ChatBoostRemoved",
    "ChatBoostUpdated",
    "ChatJoinRequest",
    "ChatMember",
    "ChatMemberUpdated",
    "ChosenInlineResult",
    "InlineQuery",
    "Message",
    "MessageReactionCountUpdated",
    "MessageReactionUpdated",
    "PaidMediaPurchased",
    "Poll",
    "PollAnswer",
    "PreCheckoutQuery",
    "ShippingQuery",
    "Update",
    "UpdateKind",
    "User",
    "WebhookInfo",
    "convert_update",
    "decode_update",
]


class UpdateKind(enum.StrEnum):
    """Update variants, named after their JSON fields."""

    CHAT_JOIN_REQUEST = "chat_join_request"
    CHAT_BOOST = "chat_boost"
    REMOVED_CHAT_BOOST = "removed_chat_boost"
    MESSAGE = "message"
    EDITED_MESSAGE = "edited_message"
    CHANNEL_POST = "channel_post"
    EDITED_CHANNEL_POST = "edited_channel_post"
    BUSINESS_CONNECTION = "business_connection"
    BUSINESS_MESSAGE = "business_message"
    EDITED_BUSINESS_MESSAGE = "edited_business_message"
    DELETED_BUSINESS_MESSAGES = "deleted_business_messages"
    MESSAGE_REACTION = "message_reaction"
    MESSAGE_REACTION_COUNT = "message_reaction_count"
    INLINE_QUERY = "inline_query"
    CHOSEN_INLINE_RESULT = "chosen_inline_result"
    CALLBACK_QUERY = "callback_query"
    SHIPPING_QUERY = "shipping_query"
    PRE_CHECKOUT_QUERY = "pre_checkout_query"
    POLL = "poll"
    POLL_ANSWER = "poll_answer"
    MY_CHAT_MEMBER = "my_chat_member"
    CHAT_MEMBER = "chat_member"
    PURCHASED_PAID_MEDIA = "purchased_paid_media"


class User(msgspec.Struct, forbid_unknown_fields=False):
    id: int
    is_bot: bool = False
    first_name: str | None = None
    last_name: str | None = None
    username: str | None = None
    language_code: str | None = None


class Chat(msgspec.Struct, forbid_unknown_fields=False):
    id: int
    type: str = "private"
    title: str | None = None
    username: str | None = None
    is_forum: bool | None = None


class Message(msgspec.Struct, forbid_unknown_fields=False):
    message_id: int
    chat: Chat
    date: int = 0
    from_: User | None = msgspec.field(name="from", default=None)
    sender_chat: Chat | None = None
    message_thread_id: int | None = None
    business_connection_id: str | None = None
    text: str | None = None
    caption: str | None = None
    reply_to_message: Message | None = None


class CallbackQuery(msgspec.Struct, forbid_unknown_fields=False):
    id: str
    from_: User = msgspec.field(name="from")
    message: Message | None = None
    inline_message_id: str | None = None
    chat_instance: str | None = None
    data: str | None = None
    game_short_name: str | None = None


class InlineQuery(msgspec.Struct, forbid_unknown_fields=False):
    id: str
    from_: User = msgspec.field(name="from")
    query: str = ""
    offset: str = ""
    chat_type: str | None = None


class ChosenInlineResult(msgspec.Struct, forbid_unknown_fields=False):
    result_id: str
    from_: User = msgspec.field(name="from")
    query: str = ""
    inline_message_id: str | None = None


class ChatJoinRequest(msgspec.Struct, forbid_unknown_fields=False):
    chat: Chat
    from_: User = msgspec.field(name="from")
    user_chat_id: int = 0
    date: int = 0
    bio: str | None = None


class ChatBoost(msgspec.Struct, forbid_unknown_fields=False):
    boost_id: str
    add_date: int = 0
    expiration_date: int = 0
    source: dict[str, Any] | None = None


class ChatBoostUpdated(msgspec.Struct, forbid_unknown_fields=False):
    chat: Chat
    boost: ChatBoost | None = None


class ChatBoostRemoved(msgspec.Struct, forbid_unknown_fields=False):
    chat: Chat
    boost_id: str = ""
    remove_date: int = 0
    source: dict[str, Any] | None = None


class BusinessConnection(msgspec.Struct, forbid_unknown_fields=False):
    id: str
    user: User
    user_chat_id: int = 0
    date: int = 0
    is_enabled: bool = False


class BusinessMessagesDeleted(msgspec.Struct, forbid_unknown_fields=False):
    business_connection_id: str
    chat: Chat
    message_ids: list[int] = msgspec.field(default_factory=list)


class MessageReactionUpdated(msgspec.Struct, forbid_unknown_fields=False):
    chat: Chat
    message_id: int
    date: int = 0
    user: User | None = None
    actor_chat: Chat | None = None
    old_reaction: list[dict[str, Any]] = msgspec.field(default_factory=list)
    new_reaction: list[dict[str, Any]] = msgspec.field(default_factory=list)


class MessageReactionCountUpdated(msgspec.Struct, forbid_unknown_fields=False):
    chat: Chat
    message_id: int
    date: int = 0
    reactions: list[dict[str, Any]] = msgspec.field(default_factory=list)


class ShippingQuery(msgspec.Struct, forbid_unknown_fields=False):
    id: str
    from_: User = msgspec.field(name="from")
    invoice_payload: str = ""
    shipping_address: dict[str, Any] | None = None


class PreCheckoutQuery(msgspec.Struct, forbid_unknown_fields=False):
    id: str
    from_: User = msgspec.field(name="from")
    currency: str = ""
    total_amount: int = 0
    invoice_payload: str = ""
    shipping_option_id: str | None = None


class Poll(msgspec.Struct, forbid_unknown_fields=False):
    id: str
    question: str = ""
    options: list[dict[str, Any]] = msgspec.field(default_factory=list)
    total_voter_count: int = 0
    is_closed: bool = False
    is_anonymous: bool = True
    type: str = "regular"


class PollAnswer(msgspec.Struct, forbid_unknown_fields=False):
    poll_id: str
    option_ids: list[int] = msgspec.field(default_factory=list)
    user: User | None = None
    voter_chat: Chat | None = msgspec.field(name="chat", default=None)


class ChatMember(msgspec.Struct, forbid_unknown_fields=False):
    status: str
    user: User | None = None


class ChatMemberUpdated(msgspec.Struct, forbid_unknown_fields=False):
    chat: Chat
    from_: User = msgspec.field(name="from")
    date: int = 0
    old_chat_member: ChatMember | None = None
    new_chat_member: ChatMember | None = None


class PaidMediaPurchased(msgspec.Struct, forbid_unknown_fields=False):
    from_: User = msgspec.field(name="from")
    paid_media_payload: str = ""


class WebhookInfo(msgspec.Struct, forbid_unknown_fields=False):
    url: str = ""
    has_custom_certificate: bool = False
    pending_update_count: int = 0
    last_error_date: int | None = None
    last_error_message: str | None = None
    max_connections: int | None = None
    allowed_updates: list[str] | None = None


class Update(msgspec.Struct, forbid_unknown_fields=False):
    update_id: int
    chat_join_request: ChatJoinRequest | None = None
    chat_boost: ChatBoostUpdated | None = None
    removed_chat_boost: ChatBoostRemoved | None = None
    message: Message | None = None
    edited_message: Message | None = None
    channel_post: Message | None = None
    edited_channel_post: Message | None = None
    business_connection: BusinessConnection | None = None
    business_message: Message | None = None
    edited_business_message: Message | None = None
    deleted_business_messages: BusinessMessagesDeleted | None = None
    message_reaction: MessageReactionUpdated | None = None
    message_reaction_count: MessageReactionCountUpdated | None = None
    inline_query: InlineQuery | None = None
    chosen_inline_result: ChosenInlineResult | None = None
    callback_query: CallbackQuery | None = None
    shipping_query: ShippingQuery | None = None
    pre_checkout_query: PreCheckoutQuery | None = None
    poll: Poll | None = None
    poll_answer: PollAnswer | None = None
    my_chat_member: ChatMemberUpdated | None = None
    chat_member: ChatMemberUpdated | None = None
    purchased_paid_media: PaidMediaPurchased | None = None

    @property
    def kind(self) -> UpdateKind | None:
        for kind in UpdateKind:
            if getattr(self, kind.value) is not None:
                return kind
        return None

    @property
    def payload(self) -> Any | None:
        kind = self.kind
        if kind is None:
            return None
        return getattr(self, kind.value)


_UPDATE_DECODER = msgspec.json.Decoder(Update)


def decode_update(data: bytes | str) -> Update:
    return _UPDATE_DECODER.decode(data)


def convert_update(data: dict[str, Any]) -> Update:
    return msgspec.convert(data, type=Update)
