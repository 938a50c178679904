import asyncio
from typing import Awaitable, Callable, Optional, Sequence

import requests
from fastapi.concurrency import run_in_threadpool

from pharmacare.common.logger import custom_logger, mask_phone
from pharmacare.common.models.directive_models import (
    ButtonsDirective,
    Directive,
    ListDirective,
    TemplateDirective,
    TextDirective,
)
from pharmacare.state_machine.integrations.meta.api_requests import MetaAPI, MetaAPIError

logger = custom_logger()

SEND_ERRORS = (MetaAPIError, requests.RequestException, ValueError)


class MessageDispatcher:
    """
    Executes the directives decided by the conversation flow against the
    Meta API, in order. Failed sends are logged and degraded to the
    directive's fallback; they never propagate to the caller.
    """

    def __init__(
        self,
        gateway: MetaAPI,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ) -> None:
        self.gateway = gateway
        self._sleep = sleep or asyncio.sleep

    def _send(self, to: str, directive: Directive) -> dict:
        if isinstance(directive, TextDirective):
            return self.gateway.send_text(to, directive.body)
        if isinstance(directive, ButtonsDirective):
            return self.gateway.send_buttons(
                to,
                directive.body,
                directive.buttons,
                header=directive.header,
                footer=directive.footer,
            )
        if isinstance(directive, ListDirective):
            return self.gateway.send_list(
                to,
                directive.body,
                directive.button_label,
                directive.sections,
                header=directive.header,
                footer=directive.footer,
            )
        if isinstance(directive, TemplateDirective):
            return self.gateway.send_template(
                to,
                directive.template_name,
                header_type=directive.header_type,
                header_url=directive.header_url,
                language_code=directive.language_code,
            )
        raise ValueError(f"Unsupported directive: {type(directive).__name__}")

    async def deliver(self, to: str, directive: Directive) -> bool:
        """Send one directive, then its fallback message, then its fallback text."""

        attempts = [directive]
        fallback = getattr(directive, "fallback", None)
        if fallback is not None:
            attempts.append(fallback)

        for attempt in attempts:
            try:
                await run_in_threadpool(self._send, to, attempt)
                return True
            except SEND_ERRORS as exc:
                logger.error(
                    "Failed to send message",
                    extra={
                        "to": mask_phone(to),
                        "kind": attempt.kind,
                        "error": str(exc),
                    },
                )

        if directive.fallback_text:
            try:
                await run_in_threadpool(self.gateway.send_text, to, directive.fallback_text)
            except SEND_ERRORS:
                logger.exception(
                    "Fallback text also failed", extra={"to": mask_phone(to)}
                )
        return False

    async def dispatch(self, to: str, directives: Sequence[Directive]) -> int:
        """Send every directive in order; returns how many were delivered as decided."""

        delivered = 0
        for directive in directives:
            if directive.delay_seconds:
                await self._sleep(directive.delay_seconds)
            if await self.deliver(to, directive):
                delivered += 1
        return delivered
