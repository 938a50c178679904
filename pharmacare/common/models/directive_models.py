from typing import List, Literal, Optional, Union

from pydantic import BaseModel, Field, model_validator

MAX_BUTTONS = 3
MAX_BUTTON_TITLE_LENGTH = 20
MAX_LIST_ROWS = 10
MAX_ROW_TITLE_LENGTH = 24
MAX_ROW_DESCRIPTION_LENGTH = 72
MAX_HEADER_LENGTH = 60
MAX_TEXT_BODY_LENGTH = 4096
MAX_INTERACTIVE_BODY_LENGTH = 1024


class ButtonModel(BaseModel):
    """Reply button; ``id`` is the action token echoed back by WhatsApp."""

    id: str = Field(min_length=1, max_length=256)
    title: str = Field(min_length=1, max_length=MAX_BUTTON_TITLE_LENGTH)


class ListRowModel(BaseModel):
    id: str = Field(min_length=1, max_length=200)
    title: str = Field(min_length=1, max_length=MAX_ROW_TITLE_LENGTH)
    description: Optional[str] = Field(
        default=None, max_length=MAX_ROW_DESCRIPTION_LENGTH
    )


class ListSectionModel(BaseModel):
    title: str = Field(min_length=1, max_length=MAX_ROW_TITLE_LENGTH)
    rows: List[ListRowModel] = Field(min_length=1)


class MessageDirective(BaseModel):
    """
    Class that represents one outbound message decided by the conversation.

    Attributes:
        delay_seconds: float: Pause before sending (cosmetic pacing only).
        fallback_text: Optional(str): Plain text sent when this message fails.
    """

    delay_seconds: float = Field(default=0.0, ge=0)
    fallback_text: Optional[str] = None


class TextDirective(MessageDirective):
    kind: Literal["text"] = "text"
    body: str = Field(min_length=1, max_length=MAX_TEXT_BODY_LENGTH)


class ButtonsDirective(MessageDirective):
    kind: Literal["buttons"] = "buttons"
    body: str = Field(min_length=1, max_length=MAX_INTERACTIVE_BODY_LENGTH)
    buttons: List[ButtonModel] = Field(min_length=1, max_length=MAX_BUTTONS)
    header: Optional[str] = Field(default=None, max_length=MAX_HEADER_LENGTH)
    footer: Optional[str] = Field(default=None, max_length=MAX_HEADER_LENGTH)


class ListDirective(MessageDirective):
    kind: Literal["list"] = "list"
    body: str = Field(min_length=1, max_length=MAX_INTERACTIVE_BODY_LENGTH)
    button_label: str = Field(min_length=1, max_length=MAX_BUTTON_TITLE_LENGTH)
    sections: List[ListSectionModel] = Field(min_length=1)
    header: Optional[str] = Field(default=None, max_length=MAX_HEADER_LENGTH)
    footer: Optional[str] = Field(default=None, max_length=MAX_HEADER_LENGTH)

    @model_validator(mode="after")
    def _check_row_count(self) -> "ListDirective":
        total_rows = sum(len(section.rows) for section in self.sections)
        if total_rows > MAX_LIST_ROWS:
            raise ValueError(
                f"Invalid list row count. Max allowed is {MAX_LIST_ROWS}, got {total_rows}"
            )
        return self

    @property
    def row_ids(self) -> List[str]:
        return [row.id for section in self.sections for row in section.rows]


class TemplateDirective(MessageDirective):
    """Pre-approved template, optionally with a media header.

    ``fallback`` is sent instead when the template itself is rejected.
    """

    kind: Literal["template"] = "template"
    template_name: str = Field(min_length=1)
    header_type: Optional[Literal["IMAGE", "DOCUMENT", "VIDEO"]] = None
    header_url: Optional[str] = None
    language_code: str = "en_US"
    fallback: Optional[ButtonsDirective] = None


Directive = Union[TextDirective, ButtonsDirective, ListDirective, TemplateDirective]
