from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


class TextBodyModel(BaseModel):
    body: str
    preview_url: bool = False


class InteractiveModel(BaseModel):
    """Interactive (reply button or list) message content."""

    type: Literal["button", "list"]
    body: Dict[str, str]
    action: Dict[str, Any]
    header: Optional[Dict[str, str]] = None
    footer: Optional[Dict[str, str]] = None


class TemplateModel(BaseModel):
    name: str
    language: Dict[str, str] = Field(default_factory=lambda: {"code": "en_US"})
    components: Optional[List[Dict[str, Any]]] = None


class MetaPostMessageModel(BaseModel):
    """
    Class that represents the JSON body for POST /<phone_number_id>/messages.

    Attributes:
        messaging_product: str: Always "whatsapp".
        recipient_type: str: Always "individual".
        to: str: Destination phone number.
        type: str: Message type (text, interactive or template).
        context: Optional(dict): Original message reference when replying.
    """

    messaging_product: str = "whatsapp"
    recipient_type: str = "individual"
    to: str
    type: Literal["text", "interactive", "template"] = "text"
    text: Optional[TextBodyModel] = None
    interactive: Optional[InteractiveModel] = None
    template: Optional[TemplateModel] = None
    context: Optional[Dict[str, str]] = None
