"""Async HTTP client wrapper for the WhatsApp gateway API."""

import json
import logging
import os
from typing import Any

import httpx

from nutripocket_mcp.models import ErrorResponse

logger = logging.getLogger(__name__)

GROUP_SUFFIX = "@g.us"

GatewayResult = dict[str, Any] | list[Any] | ErrorResponse


def _configured_groups() -> list[str]:
    """Read extra group ids from the WHATSAPP_GROUPS JSON array."""
    raw = os.getenv("WHATSAPP_GROUPS", "[]")
    try:
        groups = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning(f"WHATSAPP_GROUPS is not valid JSON: {raw!r}")
        return []
    return [str(g) for g in groups] if isinstance(groups, list) else []


class WhatsAppClient:
    """Async client for the WhatsApp gateway.

    Every gateway method is a POST to ``{base_url}/<method>`` with a JSON body
    of the form ``{"args": {...}}``.
    """

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout: float = 30.0,
        groups: list[str] | None = None,
    ):
        """Initialize the gateway client.

        Args:
            base_url: Gateway base URL (e.g., http://whatsapp:8002)
            api_key: Value sent in the ``api_key`` header
            timeout: Request timeout in seconds
            groups: Chat ids to treat as groups in addition to ``@g.us`` ids
        """
        self.base_url = base_url or os.getenv("WHATSAPP_URL", "")
        self.api_key = api_key if api_key is not None else os.getenv("WHATSAPP_SECRET", "")
        self.timeout = timeout
        self.groups = groups if groups is not None else _configured_groups()
        self._client: httpx.AsyncClient | None = None

    @property
    def headers(self) -> dict[str, str]:
        """Get gateway headers."""
        return {
            "api_key": self.api_key,
            "Content-Type": "application/json",
            "Accept": "*/*",
        }

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=self.headers,
                timeout=self.timeout,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def is_group(self, chat_id: str) -> bool:
        """Whether a chat id refers to a group."""
        return chat_id.endswith(GROUP_SUFFIX) or chat_id in self.groups

    async def _call(self, method: str, args: dict[str, Any]) -> GatewayResult:
        """Invoke a gateway method.

        Args:
            method: Gateway method name (sendText, reply, sendFile, ...)
            args: Method arguments, sent as ``{"args": args}``

        Returns:
            Parsed JSON response or ErrorResponse on failure
        """
        client = await self._get_client()

        try:
            response = await client.post(f"/{method}", json={"args": args})

            if response.status_code == 401:
                return ErrorResponse.auth_error("Invalid WhatsApp gateway api_key")

            if response.status_code == 404:
                return ErrorResponse.not_found("Gateway method", method)

            response.raise_for_status()

            if response.status_code == 204 or not response.content:
                return {"success": True}

            try:
                result = response.json()
            except ValueError:
                return {"success": True, "response": response.text}

        except httpx.ConnectError:
            return ErrorResponse.api_error(f"Cannot connect to WhatsApp gateway at {self.base_url}")
        except httpx.TimeoutException:
            return ErrorResponse.api_error("Request to WhatsApp gateway timed out")
        except httpx.HTTPStatusError as e:
            return ErrorResponse.api_error(f"HTTP {e.response.status_code}: {e.response.text}")
        except Exception as e:
            return ErrorResponse.api_error(f"Unexpected error: {str(e)}")

        # The gateway reports some failures in a 200 body
        if isinstance(result, dict) and result.get("success") is False:
            error = result.get("error")
            if isinstance(error, dict):
                message = error.get("message") or json.dumps(error)
            else:
                message = str(error or "Gateway reported failure")
            return ErrorResponse.api_error(message)

        return result

    # Message Methods
    async def send_text(self, to: str, content: str) -> GatewayResult:
        """Send a plain text message.

        Args:
            to: Recipient chat id (user ``...@c.us`` or group ``...@g.us``)
            content: Message text

        Returns:
            Gateway response or error
        """
        return await self._call("sendText", {"to": to, "content": content})

    async def reply(
        self,
        to: str,
        content: str,
        quoted_msg_id: str,
        send_seen: bool | None = None,
    ) -> GatewayResult:
        """Reply to a specific message.

        Args:
            to: Chat id the quoted message belongs to
            content: Reply text
            quoted_msg_id: Id of the message being replied to
            send_seen: Mark the quoted message as read

        Returns:
            Gateway response or error
        """
        args: dict[str, Any] = {
            "to": to,
            "content": content,
            "quotedMsgId": quoted_msg_id,
        }
        if send_seen is not None:
            args["sendSeen"] = send_seen

        return await self._call("reply", args)

    async def send_image(
        self,
        to: str,
        image: str,
        caption: str,
        filename: str = "image.jpg",
    ) -> GatewayResult:
        """Send an image.

        Args:
            to: Recipient chat id
            image: Image as a ``data:image/...;base64,`` URI
            caption: Caption shown under the image
            filename: Name reported to the recipient

        Returns:
            Gateway response or error
        """
        args = {
            "to": to,
            "file": image,
            "filename": filename,
            "caption": caption,
            "quotedMsgId": None,
            "waitForId": False,
            "ptt": False,
            "withoutPreview": False,
            "hideTags": False,
            "viewOnce": False,
            "requestConfig": None,
        }
        return await self._call("sendImage", args)

    async def send_file(
        self,
        to: str,
        file: str,
        filename: str,
        caption: str | None = None,
        without_preview: bool | None = None,
        quoted_msg_id: str | None = None,
        ptt: bool = False,
    ) -> GatewayResult:
        """Send a file (document, media or voice note).

        Args:
            to: Recipient chat id
            file: File content as a data URI
            filename: Name reported to the recipient
            caption: Optional caption
            without_preview: Suppress the preview thumbnail
            quoted_msg_id: Optional message to reply to
            ptt: Send as a push-to-talk voice note

        Returns:
            Gateway response or error
        """
        args: dict[str, Any] = {"to": to, "file": file, "filename": filename}

        if caption:
            args["caption"] = caption
        if without_preview is not None:
            args["withoutPreview"] = without_preview
        if quoted_msg_id:
            args["quotedMsgId"] = quoted_msg_id
        if ptt:
            args["ptt"] = True
            args["waitForId"] = False

        return await self._call("sendFile", args)

    async def simulate_typing(self, to: str, on: bool) -> GatewayResult:
        """Turn the typing indicator on or off for a chat."""
        return await self._call("simulateTyping", {"to": to, "on": on})


# Singleton client instance
_client_instance: WhatsAppClient | None = None


def get_client() -> WhatsAppClient:
    """Get or create the singleton WhatsApp gateway client.

    Returns:
        WhatsAppClient configured from WHATSAPP_URL / WHATSAPP_SECRET

    Raises:
        ValueError: If WHATSAPP_URL is not set
    """
    global _client_instance

    if _client_instance is None:
        base_url = os.getenv("WHATSAPP_URL")

        if not base_url:
            raise ValueError(
                "WHATSAPP_URL environment variable is required for WhatsApp tools. "
                "Set it in .env file."
            )

        _client_instance = WhatsAppClient(base_url=base_url)
        logger.info(f"Created WhatsApp gateway client for {base_url}")

    return _client_instance


async def close_client() -> None:
    """Close the singleton gateway client, if one was created."""
    global _client_instance

    if _client_instance is not None:
        await _client_instance.close()
        _client_instance = None
