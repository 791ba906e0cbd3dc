# brushquote/services/email.py
"""
Postmark delivery for outbox notifications.

Each message is tagged with its outbox event (``deposit_verified``,
``portal_expired`` ...) so the Postmark activity feed can be filtered per
lifecycle step, and carries the tenant and quote ids as metadata.
"""
from __future__ import annotations

from typing import Any, Dict, Optional

import requests

from brushquote.core.logging_config import logger
from brushquote.core.settings import settings

POSTMARK_API_BASE = "https://api.postmarkapp.com"


class EmailError(RuntimeError):
    pass


class PostmarkNotifier:
    def __init__(
        self,
        server_token: Optional[str] = None,
        *,
        sender: Optional[str] = None,
        reply_to: Optional[str] = None,
        message_stream: Optional[str] = None,
        session: Optional[requests.Session] = None,
        timeout: float = 15,
    ):
        self.server_token = server_token if server_token is not None else settings.POSTMARK_SERVER_TOKEN
        self.sender = sender if sender is not None else settings.POSTMARK_FROM
        self.reply_to = reply_to if reply_to is not None else settings.POSTMARK_REPLY_TO
        self.message_stream = message_stream or settings.POSTMARK_MESSAGE_STREAM
        self.session = session or requests.Session()
        self.timeout = timeout

    def build_message(self, *, to: str, subject: str, html_body: str, metadata: Dict[str, Any]) -> Dict[str, Any]:
        event = metadata.get("event")
        message: Dict[str, Any] = {
            "From": self.sender,
            "To": to,
            "Subject": subject,
            "HtmlBody": html_body,
            "MessageStream": self.message_stream,
            "Metadata": {k: str(v) for k, v in metadata.items() if v is not None},
        }
        if event:
            message["Tag"] = str(event)
        if self.reply_to:
            message["ReplyTo"] = self.reply_to
        return message

    def send(self, *, to: str, subject: str, html_body: str, metadata: Dict[str, Any]) -> str:
        """Deliver one rendered notification; returns the Postmark MessageID."""
        if not self.server_token or not self.sender:
            raise EmailError("postmark_not_configured")

        message = self.build_message(to=to, subject=subject, html_body=html_body, metadata=metadata)
        try:
            r = self.session.post(
                f"{POSTMARK_API_BASE}/email",
                json=message,
                headers={"Accept": "application/json", "X-Postmark-Server-Token": self.server_token},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise EmailError(f"postmark_unreachable:{type(e).__name__}") from e

        try:
            body = r.json()
        except ValueError:
            body = {}

        # Postmark reports rejections as ErrorCode != 0, sometimes with a 2xx
        if r.status_code >= 300 or body.get("ErrorCode"):
            raise EmailError(
                f"postmark_rejected:{r.status_code}:{body.get('ErrorCode')}:{body.get('Message') or r.text}"
            )
        message_id = body.get("MessageID")
        if not message_id:
            raise EmailError("postmark_rejected:missing_message_id")

        logger.bind(event=message.get("Tag"), stream=self.message_stream).debug(
            "postmark_accepted", message_id=message_id
        )
        return str(message_id)
