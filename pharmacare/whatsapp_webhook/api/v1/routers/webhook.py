# Built-in imports
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple
from uuid import uuid4

# External imports
from fastapi import APIRouter, BackgroundTasks, Query, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import PlainTextResponse

# Own imports
from pharmacare.common.catalog import load_catalog
from pharmacare.common.config import load_settings, log_missing_settings
from pharmacare.common.logger import custom_logger, mask_phone
from pharmacare.common.session_store import build_session_store
from pharmacare.state_machine.integrations.meta.api_requests import MetaAPI
from pharmacare.state_machine.processing.adapter import Interaction, parse_interaction
from pharmacare.state_machine.processing.customer_flow import ConversationFlow
from pharmacare.state_machine.processing.replies import FlowOptions
from pharmacare.state_machine.processing.send_message import MessageDispatcher

WHATSAPP_OBJECT = "whatsapp_business_account"

logger = custom_logger()

# Configuration is validated once, at startup; missing values are not fatal
settings = load_settings()
log_missing_settings(settings)

catalog = load_catalog(settings.catalog_path)
conversation_flow = ConversationFlow(
    catalog=catalog,
    session_store=build_session_store(settings),
    dispatcher=MessageDispatcher(MetaAPI(settings)),
    options=FlowOptions.from_settings(settings),
)


router = APIRouter()


def _extract_messages_and_statuses(
    input_body: Dict[str, Any],
) -> Tuple[List[Dict[str, Any]], List[Dict[str, Any]]]:
    """Collect every message and status of the webhook envelope.

    Absent or empty entry/changes/messages arrays simply contribute nothing.
    """

    messages: List[Dict[str, Any]] = []
    statuses: List[Dict[str, Any]] = []

    for entry in input_body.get("entry") or []:
        for change in entry.get("changes") or []:
            if change.get("field", "messages") != "messages":
                continue
            value = change.get("value") or {}
            messages.extend(value.get("messages") or [])
            statuses.extend(value.get("statuses") or [])

    return messages, statuses


async def _process_interaction(interaction: Interaction) -> None:
    try:
        await conversation_flow.handle(interaction)
    except Exception:
        logger.exception(
            "Failed to process interaction",
            extra={
                "user": mask_phone(interaction.user_id),
                "message_id": interaction.message_id,
            },
        )


@router.get("/webhook", tags=["Chatbot"])
async def get_chatbot_webhook(
    hub_mode: Optional[str] = Query(None, alias="hub.mode"),
    hub_verify_token: Optional[str] = Query(None, alias="hub.verify_token"),
    hub_challenge: Optional[str] = Query(None, alias="hub.challenge"),
):
    """
    Meta calls this with:
      hub.mode=subscribe
      hub.verify_token=<token>
      hub.challenge=<random string to echo>
    We must return 200 and the raw challenge string if the token matches.
    """
    logger.info("Webhook verification request", extra={"mode": hub_mode})

    if (
        hub_mode == "subscribe"
        and settings.verify_token
        and hub_verify_token == settings.verify_token
        and hub_challenge
    ):
        logger.info("Webhook verified successfully")
        return PlainTextResponse(str(hub_challenge), status_code=200)

    logger.warning("Webhook verification failed")
    return PlainTextResponse("Forbidden", status_code=403)


@router.post("/webhook", tags=["Chatbot"])
async def post_chatbot_webhook(request: Request, background_tasks: BackgroundTasks):
    correlation_id = str(uuid4())
    logger.append_keys(correlation_id=correlation_id)
    try:
        input_body = await request.json()
        logger.debug("Received body in post_chatbot_webhook()", extra={"body": input_body})

        body_object = input_body.get("object")
        if body_object and body_object != WHATSAPP_OBJECT:
            logger.warning(
                "Received non-WhatsApp webhook event", extra={"object": body_object}
            )
            return PlainTextResponse("OK", status_code=200)

        messages, statuses = _extract_messages_and_statuses(input_body)

        for status in statuses:
            logger.info(
                "Message status update",
                extra={
                    "status": status.get("status"),
                    "recipient": mask_phone(status.get("recipient_id")),
                    "message_id": status.get("id"),
                },
            )

        scheduled = 0
        for message in messages:
            interaction = parse_interaction(message)
            if interaction is None:
                continue
            background_tasks.add_task(_process_interaction, interaction)
            scheduled += 1

        logger.info(
            "Finished post_chatbot_webhook() successfully",
            extra={"messages": scheduled, "statuses": len(statuses)},
        )
        return PlainTextResponse("OK", status_code=200)

    except Exception as e:
        logger.exception(f"Error in post_chatbot_webhook(): {e}")
        return PlainTextResponse("Error processing webhook", status_code=500)


@router.get("/health", tags=["Health"])
async def get_health():
    sessions = await run_in_threadpool(conversation_flow.session_store.count)
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "sessions": sessions,
        "medicines": len(conversation_flow.catalog),
        "categories": len(conversation_flow.catalog.categories()),
    }
