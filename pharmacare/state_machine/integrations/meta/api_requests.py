# Built-in imports
import json
from typing import Any, Dict, List, Optional, Sequence

# External imports
from aws_lambda_powertools import Logger
import requests
from requests.adapters import HTTPAdapter, Retry

# Own imports
from pharmacare.common.config import Settings
from pharmacare.common.logger import custom_logger, mask_phone
from pharmacare.common.models.directive_models import (
    MAX_BUTTON_TITLE_LENGTH,
    MAX_BUTTONS,
    MAX_LIST_ROWS,
    ButtonModel,
    ListSectionModel,
)
from .api_utils import get_api_endpoint, get_api_headers
from .schemas import (
    InteractiveModel,
    MetaPostMessageModel,
    TemplateModel,
    TextBodyModel,
)

DEFAULT_CONNECT_TIMEOUT = 5
DEFAULT_READ_TIMEOUT = 20


class MetaAPIError(Exception):
    """Raised when the Graph API rejects a message (non-2xx response)."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        meta_error: Optional[Dict[str, Any]] = None,
        endpoint: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.meta_error = meta_error or {}
        self.endpoint = endpoint


def _build_session() -> requests.Session:
    """HTTP session with retries for 429/5xx."""
    session = requests.Session()
    retries = Retry(
        total=3,
        backoff_factor=0.5,
        status_forcelist=(429, 500, 502, 503, 504),
        allowed_methods=("POST", "GET"),
        raise_on_status=False,
    )
    session.mount("https://", HTTPAdapter(max_retries=retries))
    return session


def _header(text: Optional[str]) -> Optional[Dict[str, str]]:
    return {"type": "text", "text": text} if text else None


def _footer(text: Optional[str]) -> Optional[Dict[str, str]]:
    return {"text": text} if text else None


class MetaAPI:
    """
    Class that contains the helpers for sending messages through the Meta API.
    """

    def __init__(
        self,
        settings: Settings,
        logger: Optional[Logger] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.logger = logger or custom_logger()
        self.settings = settings
        self.session = session or _build_session()
        self.api_headers: dict = get_api_headers(bearer_token=settings.whatsapp_token)
        self.api_endpoint: str = get_api_endpoint(
            settings.meta_endpoint,
            settings.api_version,
            f"{settings.phone_number_id}/messages",
        )

    def post_message(self, message_data_model: MetaPostMessageModel) -> dict:
        """
        Method to send a POST message request to the Meta API.

        :param message_data_model (MetaPostMessageModel): JSON body to send.
        """

        if not self.settings.whatsapp_token or not self.settings.phone_number_id:
            raise MetaAPIError(
                "Meta API configuration is incomplete; "
                "WHATSAPP_TOKEN and WHATSAPP_PHONE_NUMBER_ID are required"
            )

        self.logger.info(
            "Starting POST request to Meta API",
            extra={
                "endpoint": self.api_endpoint,
                "to": mask_phone(message_data_model.to),
                "type": message_data_model.type,
            },
        )

        response = self.session.post(
            self.api_endpoint,
            headers=self.api_headers,
            json=message_data_model.model_dump(exclude_none=True),
            timeout=(DEFAULT_CONNECT_TIMEOUT, DEFAULT_READ_TIMEOUT),
        )

        body_text = response.text
        self.logger.info(
            "Meta response",
            extra={"status_code": response.status_code, "body_preview": body_text[:2000]},
        )

        if 200 <= response.status_code < 300:
            try:
                return response.json()
            except ValueError:
                return {"ok": True, "raw": body_text}

        try:
            err = response.json()
        except ValueError:
            err = {"error": {"message": body_text}}
        meta_error = err.get("error", {}) or {}

        self.logger.error("Meta error details", extra={"meta_error": meta_error})
        raise MetaAPIError(
            json.dumps(
                {
                    "status_code": response.status_code,
                    "message": meta_error.get("message"),
                    "code": meta_error.get("code"),
                }
            ),
            status_code=response.status_code,
            meta_error=meta_error,
            endpoint=self.api_endpoint,
        )

    def send_text(self, to: str, body: str) -> dict:
        return self.post_message(
            MetaPostMessageModel(to=to, type="text", text=TextBodyModel(body=body))
        )

    def send_buttons(
        self,
        to: str,
        body_text: str,
        buttons: Sequence[ButtonModel],
        header: Optional[str] = None,
        footer: Optional[str] = None,
    ) -> dict:
        if not 1 <= len(buttons) <= MAX_BUTTONS:
            raise ValueError(
                f"Invalid buttons count. Min allowed buttons: 1, "
                f"Max allowed buttons: {MAX_BUTTONS}"
            )

        interactive = InteractiveModel(
            type="button",
            body={"text": body_text},
            action={
                "buttons": [
                    {
                        "type": "reply",
                        "reply": {
                            "id": button.id,
                            "title": button.title[:MAX_BUTTON_TITLE_LENGTH],
                        },
                    }
                    for button in buttons
                ]
            },
            header=_header(header),
            footer=_footer(footer),
        )
        return self.post_message(
            MetaPostMessageModel(to=to, type="interactive", interactive=interactive)
        )

    def send_list(
        self,
        to: str,
        body_text: str,
        button_label: str,
        sections: Sequence[ListSectionModel],
        header: Optional[str] = None,
        footer: Optional[str] = None,
    ) -> dict:
        total_rows = sum(len(section.rows) for section in sections)
        if total_rows > MAX_LIST_ROWS:
            raise ValueError(
                f"Invalid list row count. Max allowed is {MAX_LIST_ROWS}, got {total_rows}"
            )

        interactive = InteractiveModel(
            type="list",
            body={"text": body_text},
            action={
                "button": button_label,
                "sections": [
                    section.model_dump(exclude_none=True) for section in sections
                ],
            },
            header=_header(header),
            footer=_footer(footer),
        )
        return self.post_message(
            MetaPostMessageModel(to=to, type="interactive", interactive=interactive)
        )

    def send_template(
        self,
        to: str,
        template_name: str,
        header_type: Optional[str] = None,
        header_url: Optional[str] = None,
        language_code: str = "en_US",
    ) -> dict:
        components: Optional[List[Dict[str, Any]]] = None
        if header_type and header_url:
            components = [
                {
                    "type": "header",
                    "parameters": [
                        {
                            "type": header_type.lower(),
                            header_type.lower(): {"link": header_url},
                        }
                    ],
                }
            ]

        template = TemplateModel(
            name=template_name,
            language={"code": language_code},
            components=components,
        )
        return self.post_message(
            MetaPostMessageModel(to=to, type="template", template=template)
        )
