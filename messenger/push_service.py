"""
Push relay client for the Expo push service.

Devices register an Expo push token (users/{uid}.pushToken); messages are
delivered by POSTing {to, title, body, data, sound, priority} to the relay.
There is no retry: a failed delivery is reported back as a PushResult.
"""
import logging
from dataclasses import dataclass, field
from typing import Optional, Dict, Any

import httpx

logger = logging.getLogger("messenger")


@dataclass
class PushResult:
    """Result of a push notification attempt"""
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    ticket: Dict[str, Any] = field(default_factory=dict)


class ExpoPushClient:
    """
    Expo push relay client.
    Uses an async httpx client per request, like the other outbound calls.
    """

    def __init__(
        self,
        url: str,
        access_token: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url
        self.access_token = access_token
        self.timeout = timeout
        self._transport = transport

    def _headers(self) -> Dict[str, str]:
        headers = {
            "Accept": "application/json",
            "Accept-Encoding": "gzip, deflate",
            "Content-Type": "application/json",
        }
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"
        return headers

    async def send(
        self,
        to: str,
        title: str,
        body: str,
        data: Optional[Dict[str, Any]] = None,
        sound: str = "default",
        priority: str = "high",
        channel_id: Optional[str] = None,
        badge: Optional[int] = None,
    ) -> PushResult:
        """
        Send a single push message through the relay.

        Args:
            to: Expo push token of the device
            title: Notification title
            body: Notification body
            data: Payload delivered to the app (type, chatId, callId, ...)
            sound: Sound to play on delivery
            priority: Delivery priority
            channel_id: Android notification channel
            badge: iOS badge count

        Returns:
            PushResult with the relay's ticket
        """
        message = {
            "to": to,
            "title": title,
            "body": body,
            "data": data or {},
            "sound": sound,
            "priority": priority,
        }
        if channel_id:
            message["channelId"] = channel_id
        if badge is not None:
            message["badge"] = badge

        try:
            async with httpx.AsyncClient(transport=self._transport) as client:
                response = await client.post(
                    self.url,
                    headers=self._headers(),
                    json=message,
                    timeout=self.timeout,
                )
        except httpx.TimeoutException:
            logger.error("[PUSH] Relay timeout")
            return PushResult(
                success=False,
                error="Request timeout",
                error_code="timeout"
            )
        except httpx.HTTPError as e:
            logger.error(f"[PUSH] Relay transport error: {e}")
            return PushResult(
                success=False,
                error=str(e),
                error_code="transport_error"
            )

        try:
            payload = response.json()
        except ValueError:
            payload = {}

        if response.status_code != 200:
            errors = payload.get("errors") or []
            reason = errors[0].get("message") if errors else (response.text or "Unknown error")
            logger.error(f"[PUSH] Relay rejected request: {response.status_code} - {reason}")
            return PushResult(
                success=False,
                error=reason,
                error_code=str(response.status_code)
            )

        ticket = payload.get("data") or {}
        if isinstance(ticket, list):
            ticket = ticket[0] if ticket else {}

        if ticket.get("status") == "ok":
            logger.info(f"[PUSH] Delivered to relay: {ticket.get('id')}")
            return PushResult(
                success=True,
                message_id=ticket.get("id"),
                ticket=ticket
            )

        details = ticket.get("details") or {}
        logger.warning(f"[PUSH] Ticket error: {ticket.get('message')}")
        return PushResult(
            success=False,
            error=ticket.get("message") or "Unknown ticket error",
            error_code=details.get("error") or "ticket_error",
            ticket=ticket
        )
