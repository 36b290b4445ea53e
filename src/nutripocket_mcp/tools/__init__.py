"""MCP tools for meal tracking, WhatsApp messaging and OpenAI assistance."""

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

__all__ = [
    # Meals
    "register_meal",
    # WhatsApp
    "send_message",
    "send_reply",
    "send_image",
    "send_file",
    "send_ptt",
    "simulate_typing",
    # Assistant
    "generate_audio",
    "web_search",
    "deep_research",
    "get_deep_research",
]
