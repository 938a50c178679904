# Conversation
from pharmacare.state_machine.processing.adapter import parse_interaction  # noqa
from pharmacare.state_machine.processing.customer_flow import (  # noqa
    ConversationFlow,
    TurnResult,
    advance_conversation,
)

# Delivery
from pharmacare.state_machine.processing.send_message import MessageDispatcher  # noqa
from pharmacare.state_machine.integrations.meta.api_requests import (  # noqa
    MetaAPI,
    MetaAPIError,
)

__all__ = [
    "ConversationFlow",
    "MessageDispatcher",
    "MetaAPI",
    "MetaAPIError",
    "TurnResult",
    "advance_conversation",
    "parse_interaction",
]
