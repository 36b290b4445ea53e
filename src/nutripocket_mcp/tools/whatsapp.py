"""WhatsApp gateway MCP tools."""

import base64
import binascii
import logging
import mimetypes
from pathlib import Path
from typing import Any

from nutripocket_mcp.models import ErrorResponse, ToolResponse
from nutripocket_mcp.whatsapp import get_client

logger = logging.getLogger(__name__)

# WhatsApp rejects media larger than this
MAX_FILE_SIZE = 64 * 1024 * 1024

IMAGE_PREFIX = "data:image/jpeg;base64,"


def _envelope(result: Any) -> dict:
    """Wrap a gateway result in the tool response envelope."""
    if isinstance(result, ErrorResponse):
        return ToolResponse.fail(result.message, result.code).to_dict()
    return ToolResponse.ok(result).to_dict()


def _not_configured(error: ValueError) -> dict:
    return ToolResponse.fail(str(error), "CONFIG_ERROR").to_dict()


async def send_message(to: str, content: str, quoted_msg_id: str | None = None) -> dict:
    """Send a text message, replying in-thread for groups when possible.

    Args:
        to: Recipient chat id (user or group)
        content: Message text
        quoted_msg_id: Message to reply to (used for groups only)

    Returns:
        Envelope with the gateway response
    """
    try:
        client = get_client()
    except ValueError as e:
        return _not_configured(e)

    if quoted_msg_id and client.is_group(to):
        result = await client.reply(to, content, quoted_msg_id, send_seen=True)
        if not isinstance(result, ErrorResponse):
            return _envelope(result)
        logger.warning(f"Reply to {to} failed, falling back to sendText: {result.message}")

    return _envelope(await client.send_text(to, content))


async def send_reply(
    to: str,
    content: str,
    quoted_msg_id: str,
    send_seen: bool | None = None,
) -> dict:
    """Reply to a specific message.

    Args:
        to: Chat id of the quoted message
        content: Reply text
        quoted_msg_id: Id of the message being replied to
        send_seen: Mark the quoted message as read

    Returns:
        Envelope with the gateway response
    """
    try:
        client = get_client()
    except ValueError as e:
        return _not_configured(e)

    return _envelope(await client.reply(to, content, quoted_msg_id, send_seen))


async def send_image(recipient: str, image_base64: str, caption: str) -> dict:
    """Send a base64 image with a caption.

    Args:
        recipient: Recipient chat id
        image_base64: Base64 image, with or without a data URI prefix
        caption: Caption shown with the image

    Returns:
        Envelope with the gateway response
    """
    try:
        client = get_client()
    except ValueError as e:
        return _not_configured(e)

    image = image_base64 if image_base64.startswith("data:image") else IMAGE_PREFIX + image_base64
    return _envelope(await client.send_image(recipient, image, caption))


def _detect_mime_type(file_name: str) -> str:
    mime_type, _ = mimetypes.guess_type(file_name)
    return mime_type or "application/octet-stream"


async def send_file(
    to: str,
    file_path: str,
    file_name: str | None = None,
    caption: str | None = None,
    without_preview: bool | None = None,
    mime_type: str | None = None,
) -> dict:
    """Send a local file.

    Args:
        to: Recipient chat id
        file_path: Path of the file on the server
        file_name: Name shown to the recipient (defaults to the file's name)
        caption: Optional caption
        without_preview: Suppress the preview thumbnail
        mime_type: Explicit MIME type; detected from the extension when omitted

    Returns:
        Envelope with the gateway response
    """
    path = Path(file_path)
    if not path.is_file():
        return ToolResponse.fail(f"File not found: {file_path}", "VALIDATION_ERROR").to_dict()

    size = path.stat().st_size
    if size > MAX_FILE_SIZE:
        return ToolResponse.fail(
            f"File too large: {size} bytes (limit {MAX_FILE_SIZE})", "VALIDATION_ERROR"
        ).to_dict()

    try:
        client = get_client()
    except ValueError as e:
        return _not_configured(e)

    name = file_name or path.name
    content_type = mime_type or _detect_mime_type(name)
    encoded = base64.b64encode(path.read_bytes()).decode("ascii")

    result = await client.send_file(
        to,
        f"data:{content_type};base64,{encoded}",
        name,
        caption=caption,
        without_preview=without_preview,
    )
    return _envelope(result)


async def send_ptt(to: str, audio_base64: str, quoted_msg_id: str | None = None) -> dict:
    """Send ogg/opus audio as a push-to-talk voice note.

    Args:
        to: Recipient chat id
        audio_base64: Base64 audio, with or without a data URI prefix
        quoted_msg_id: Optional message to reply to

    Returns:
        Envelope with the gateway response
    """
    # Strip data URI prefix if present
    if "," in audio_base64:
        audio_base64 = audio_base64.split(",", 1)[1]

    try:
        audio = base64.b64decode(audio_base64, validate=True)
    except (binascii.Error, ValueError) as e:
        return ToolResponse.fail(f"Invalid base64 audio: {str(e)}", "VALIDATION_ERROR").to_dict()

    try:
        client = get_client()
    except ValueError as e:
        return _not_configured(e)

    logger.debug(f"Sending {len(audio)} bytes of PTT audio to {to}")
    result = await client.send_file(
        to,
        f"data:audio/ogg;base64,{audio_base64}",
        "audio.ogg",
        quoted_msg_id=quoted_msg_id,
        ptt=True,
    )
    return _envelope(result)


async def simulate_typing(to: str, on: bool) -> dict:
    """Turn the typing indicator on or off.

    Args:
        to: Chat id
        on: True to show "typing...", False to clear it
    """
    try:
        client = get_client()
    except ValueError as e:
        return _not_configured(e)

    return _envelope(await client.simulate_typing(to, on))
