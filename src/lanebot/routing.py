"""Map updates to the conversation that owns them."""

from __future__ import annotations

from typing import Any

from .telegram.api_models import Update, UpdateKind

__all__ = ["ROUTING_ORDER", "conversation_id"]

# Several variants can share a shape, so the first populated one in this
# order decides and later ones are never consulted.
ROUTING_ORDER: tuple[UpdateKind, ...] = (
    UpdateKind.CHAT_JOIN_REQUEST,
    UpdateKind.CHAT_BOOST,
    UpdateKind.REMOVED_CHAT_BOOST,
    UpdateKind.MESSAGE,
    UpdateKind.EDITED_MESSAGE,
    UpdateKind.CHANNEL_POST,
    UpdateKind.EDITED_CHANNEL_POST,
    UpdateKind.BUSINESS_CONNECTION,
    UpdateKind.BUSINESS_MESSAGE,
    UpdateKind.EDITED_BUSINESS_MESSAGE,
    UpdateKind.DELETED_BUSINESS_MESSAGES,
    UpdateKind.MESSAGE_REACTION,
    UpdateKind.MESSAGE_REACTION_COUNT,
    UpdateKind.INLINE_QUERY,
    UpdateKind.CHOSEN_INLINE_RESULT,
    UpdateKind.CALLBACK_QUERY,
    UpdateKind.SHIPPING_QUERY,
    UpdateKind.PRE_CHECKOUT_QUERY,
    UpdateKind.POLL_ANSWER,
    UpdateKind.MY_CHAT_MEMBER,
    UpdateKind.CHAT_MEMBER,
)


def conversation_id(update: Update) -> int | None:
    """Return the conversation id for ``update``, or ``None`` if it has none.

    Chat-scoped variants use the chat id. Variants without a chat (business
    connections, inline queries, chosen inline results, payment queries and
    poll answers) use the id of the user behind them. Callback queries use the
    chat of their attached message; queries on inline messages have no chat
    and yield ``None``.
    """
    for kind in ROUTING_ORDER:
        payload = getattr(update, kind.value)
        if payload is not None:
            return _key_for(kind, payload)
    return None


def _key_for(kind: UpdateKind, payload: Any) -> int | None:
    match kind:
        case UpdateKind.BUSINESS_CONNECTION:
            return payload.user.id
        case (
            UpdateKind.INLINE_QUERY
            | UpdateKind.CHOSEN_INLINE_RESULT
            | UpdateKind.SHIPPING_QUERY
            | UpdateKind.PRE_CHECKOUT_QUERY
        ):
            return payload.from_.id
        case UpdateKind.CALLBACK_QUERY:
            if payload.message is None:
                return None
            return payload.message.chat.id
        case UpdateKind.POLL_ANSWER:
            if payload.user is not None:
                return payload.user.id
            if payload.voter_chat is not None:
                return payload.voter_chat.id
            return None
        case _:
            return payload.chat.id
