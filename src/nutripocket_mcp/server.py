"""Main MCP server entry point for Nutripocket."""

import logging
import os
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from dotenv import load_dotenv
from fastmcp import FastMCP

from nutripocket_mcp.openai_client import close_openai_client
from nutripocket_mcp.search import close_search_client
from nutripocket_mcp.store import close_store
from nutripocket_mcp.tools.assistant import (
    deep_research,
    generate_audio,
    get_deep_research,
    web_search,
)
from nutripocket_mcp.tools.meals import register_meal
from nutripocket_mcp.tools.whatsapp import (
    send_file,
    send_image,
    send_message,
    send_ptt,
    send_reply,
    simulate_typing,
)
from nutripocket_mcp.whatsapp import close_client as close_whatsapp_client

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(server: FastMCP) -> AsyncIterator[None]:
    """Release the shared store and HTTP clients when the server stops."""
    try:
        yield
    finally:
        await close_whatsapp_client()
        await close_openai_client()
        await close_search_client()
        close_store()
        logger.info("Closed shared clients")


# Create the MCP server
mcp = FastMCP(
    name="nutripocket",
    lifespan=lifespan,
    instructions="""You are connected to a personal nutrition log, a WhatsApp gateway
and OpenAI-backed helpers.

## MEAL TRACKING

Use register_meal with an `operation`:
- create: log a meal (userId + mealData with mealType, description, calories;
  carbs/protein/fat/date optional)
- read: list the meals a user logged today
- update: change fields of a meal (mealId + only the fields to change)
- delete: remove a meal permanently (mealId)
- daily_summary: today's calorie and macro totals for a user

Every response is {"success": bool, "data": ...}. On failure `data` is the
error message and `code` tells what went wrong.

## WHATSAPP

- whatsapp_send_message: text to a user or group (in-thread reply for groups)
- whatsapp_send_reply: reply to a specific message
- whatsapp_send_image / whatsapp_send_file / whatsapp_send_ptt: media and voice notes
- whatsapp_simulate_typing: show or clear the typing indicator

## ASSISTANT

- generate_audio: text to ogg/opus speech (send it with whatsapp_send_ptt)
- web_search: current information from the web, with sources
- deep_research: start a long-running research report; poll deep_research_status""",
)


# Register meal tools
@mcp.tool(name="register_meal")
async def tool_register_meal(
    operation: str,
    userId: str | None = None,
    mealId: str | None = None,
    mealData: dict[str, Any] | None = None,
) -> dict:
    """Complete meal and nutrition log with create, read, update, delete and daily summary.

    Args:
        operation: One of "create", "read", "update", "delete", "daily_summary"
        userId: User identifier. Required for create, read and daily_summary.
            When given for update/delete, only that user's meal is touched.
        mealId: Id of the meal to update or delete (returned by create)
        mealData: Meal fields. Required for create: mealType (breakfast, lunch,
            dinner, snack, ...), description, calories. Optional: carbs, protein,
            fat (grams) and date (ISO 8601, defaults to now). For update, pass
            only the fields to change.

    Returns:
        {"success": bool, "data": operation payload or error message}
    """
    return await register_meal(operation, userId, mealId, mealData)


# Register WhatsApp tools
@mcp.tool(name="whatsapp_send_message")
async def tool_whatsapp_send_message(
    to: str,
    content: str,
    quoted_msg_id: str | None = None,
) -> dict:
    """Send a text message to a WhatsApp user or group.

    Args:
        to: Recipient id (user "5511971704940@c.us" or group "120363123456789012@g.us")
        content: Message text
        quoted_msg_id: Message to reply to. For groups the message is sent as an
            in-thread reply, falling back to a plain message if the reply fails.

    Returns:
        {"success": bool, "data": gateway response or error message}
    """
    return await send_message(to, content, quoted_msg_id)


@mcp.tool(name="whatsapp_send_reply")
async def tool_whatsapp_send_reply(
    to: str,
    content: str,
    quoted_msg_id: str,
    send_seen: bool | None = None,
) -> dict:
    """Reply to a specific WhatsApp message, keeping the conversation thread.

    Args:
        to: Chat id the original message belongs to
        content: Reply text (WhatsApp limit: 4096 characters)
        quoted_msg_id: Id of the message being replied to
        send_seen: Mark the original message as read

    Returns:
        {"success": bool, "data": gateway response or error message}
    """
    return await send_reply(to, content, quoted_msg_id, send_seen)


@mcp.tool(name="whatsapp_send_image")
async def tool_whatsapp_send_image(recipient: str, image_base64: str, caption: str) -> dict:
    """Send a base64-encoded image with a caption.

    Args:
        recipient: Recipient id (user or group)
        image_base64: Base64 image data (a data URI prefix is optional; JPEG assumed)
        caption: Text shown with the image

    Returns:
        {"success": bool, "data": gateway response or error message}
    """
    return await send_image(recipient, image_base64, caption)


@mcp.tool(name="whatsapp_send_file")
async def tool_whatsapp_send_file(
    to: str,
    file_path: str,
    file_name: str | None = None,
    caption: str | None = None,
    without_preview: bool | None = None,
    mime_type: str | None = None,
) -> dict:
    """Send a file stored on the server (documents, media, archives).

    Args:
        to: Recipient id (user or group)
        file_path: Path of the file on the server (max 64MB)
        file_name: Name shown to the recipient (defaults to the file's own name)
        caption: Text shown with the file
        without_preview: Send without a preview thumbnail
        mime_type: Explicit MIME type (detected from the extension when omitted)

    Returns:
        {"success": bool, "data": gateway response or error message}
    """
    return await send_file(to, file_path, file_name, caption, without_preview, mime_type)


@mcp.tool(name="whatsapp_send_ptt")
async def tool_whatsapp_send_ptt(
    to: str,
    audio_base64: str,
    quoted_msg_id: str | None = None,
) -> dict:
    """Send ogg/opus audio as a WhatsApp voice note (push-to-talk).

    Args:
        to: Recipient id (user or group)
        audio_base64: Base64 ogg/opus audio (data URI prefix optional)
        quoted_msg_id: Message to reply to

    Returns:
        {"success": bool, "data": gateway response or error message}
    """
    return await send_ptt(to, audio_base64, quoted_msg_id)


@mcp.tool(name="whatsapp_simulate_typing")
async def tool_whatsapp_simulate_typing(to: str, on: bool) -> dict:
    """Show or clear the "typing..." indicator in a chat.

    Args:
        to: Recipient id (user or group)
        on: True to start typing, False to stop

    Returns:
        {"success": bool, "data": gateway response or error message}
    """
    return await simulate_typing(to, on)


# Register assistant tools
@mcp.tool(name="generate_audio")
async def tool_generate_audio(text_to_speak: str) -> dict:
    """Generate speech from text with OpenAI text-to-speech.

    Args:
        text_to_speak: The text to be converted to audio

    Returns:
        {"success": bool, "data": {"audioBase64", "mimeType", "format", "bytes"} or error message}
    """
    return await generate_audio(text_to_speak)


@mcp.tool(name="web_search")
async def tool_web_search(query: str) -> dict:
    """Search the web for current news, facts, documentation or research data.

    Uses the provider configured in SEARCH_PROVIDER (google or openai).

    Args:
        query: Specific natural-language query, e.g. "Protein content of cooked lentils"

    Returns:
        {"success": bool, "data": results with source links, or error message}
    """
    return await web_search(query)


@mcp.tool(name="deep_research")
async def tool_deep_research(
    query: str,
    model: str = "o4-mini-deep-research",
    background: bool = True,
    vector_store_ids: list[str] | None = None,
    use_web_search: bool = True,
    use_code_interpreter: bool = False,
) -> dict:
    """Run an OpenAI deep research report.

    Args:
        query: The research query
        model: "o3-deep-research" or "o4-mini-deep-research"
        background: Return immediately; poll deep_research_status for the report
        vector_store_ids: Vector stores to search with file_search
        use_web_search: Allow web search
        use_code_interpreter: Allow the code interpreter

    Returns:
        {"success": bool, "data": {"id", "status", "model", "outputText"} or error message}
    """
    return await deep_research(
        query, model, background, vector_store_ids, use_web_search, use_code_interpreter
    )


@mcp.tool(name="deep_research_status")
async def tool_deep_research_status(response_id: str) -> dict:
    """Check a deep research run and get its report once completed.

    Args:
        response_id: Id returned by deep_research

    Returns:
        {"success": bool, "data": {"id", "status", "model", "outputText"} or error message}
    """
    return await get_deep_research(response_id)


def main():
    """Run the MCP server.

    Transports:
    - stdio: Local subprocess communication - DEFAULT
    - http: Streamable HTTP at /mcp
    """
    # stdout carries the stdio transport, so logs go to stderr
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    if os.getenv("MEAL_STORE_BACKEND", "mongodb").lower() == "mongodb" and not os.getenv(
        "MONGODB_URI"
    ):
        logger.warning("MONGODB_URI not set, using default mongodb://localhost:27017")

    if not os.getenv("WHATSAPP_URL"):
        logger.warning("WHATSAPP_URL not set, WhatsApp tools will report a configuration error")

    if not os.getenv("OPENAI_API_KEY"):
        logger.warning("OPENAI_API_KEY not set, OpenAI tools will report a configuration error")

    transport = os.getenv("MCP_TRANSPORT", "stdio")

    # Shared clients are closed by the server lifespan on both transports
    if transport == "http":
        import uvicorn

        host = os.getenv("MCP_HOST", "0.0.0.0")
        port = int(os.getenv("MCP_PORT", "1337"))

        logger.info(f"Starting HTTP server on {host}:{port}")

        app = mcp.http_app(path="/mcp")
        uvicorn.run(app, host=host, port=port)

    elif transport == "stdio":
        logger.info("Running in stdio mode")
        mcp.run()

    else:
        print(f"Error: unknown MCP_TRANSPORT '{transport}'", file=sys.stderr)
        print("Use MCP_TRANSPORT=stdio (default) or MCP_TRANSPORT=http", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
