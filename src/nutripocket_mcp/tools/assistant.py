"""OpenAI speech, web search and deep research MCP tools."""

import base64
import logging
import os
from typing import Any

import openai

from nutripocket_mcp.models import ErrorResponse, ToolResponse
from nutripocket_mcp.openai_client import get_openai_client
from nutripocket_mcp.search import get_search_client

logger = logging.getLogger(__name__)

DEEP_RESEARCH_MODELS = ("o3-deep-research", "o4-mini-deep-research")

# Deep research runs can take tens of minutes in the foreground
DEEP_RESEARCH_TIMEOUT = 3600.0


def _not_configured(error: ValueError) -> dict:
    return ToolResponse.fail(str(error), "CONFIG_ERROR").to_dict()


def _invalid(message: str) -> dict:
    return ToolResponse.fail(message, "VALIDATION_ERROR").to_dict()


def _openai_failure(action: str, error: openai.OpenAIError) -> dict:
    """Convert an OpenAI SDK exception into a failure envelope."""
    logger.error(f"OpenAI {action} failed: {error}")
    if isinstance(error, openai.AuthenticationError):
        return ToolResponse.fail("OpenAI rejected OPENAI_API_KEY", "AUTH_ERROR").to_dict()
    return ToolResponse.fail(f"OpenAI API failed: {str(error)}", "API_ERROR").to_dict()


async def generate_audio(text_to_speak: str) -> dict:
    """Convert text to speech.

    The audio is ogg/opus, ready to be sent with send_ptt.

    Args:
        text_to_speak: Text to read aloud

    Returns:
        Envelope with ``{audioBase64, mimeType, format, bytes}``
    """
    if not text_to_speak or not text_to_speak.strip():
        return _invalid("text_to_speak must not be empty")

    try:
        client = get_openai_client()
    except ValueError as e:
        return _not_configured(e)

    try:
        response = await client.audio.speech.create(
            model=os.getenv("OPENAI_TTS_MODEL", "tts-1"),
            voice=os.getenv("OPENAI_TTS_VOICE", "onyx"),
            input=text_to_speak,
            response_format="opus",
        )
    except openai.OpenAIError as e:
        return _openai_failure("speech", e)

    audio = response.content
    return ToolResponse.ok(
        {
            "audioBase64": base64.b64encode(audio).decode("ascii"),
            "mimeType": "audio/ogg",
            "format": "opus",
            "bytes": len(audio),
        }
    ).to_dict()


async def _search_with_google(query: str) -> dict:
    try:
        client = get_search_client()
    except ValueError as e:
        return _not_configured(e)

    result = await client.search(query)
    if isinstance(result, ErrorResponse):
        return ToolResponse.fail(result.message, result.code).to_dict()
    return ToolResponse.ok(result).to_dict()


async def _search_with_openai(query: str) -> dict:
    try:
        client = get_openai_client()
    except ValueError as e:
        return _not_configured(e)

    try:
        completion = await client.chat.completions.create(
            model=os.getenv("OPENAI_SEARCH_MODEL", "gpt-4o-search-preview"),
            web_search_options={},
            messages=[{"role": "user", "content": query}],
        )
    except openai.OpenAIError as e:
        return _openai_failure("web search", e)

    message = completion.choices[0].message
    citations = [
        {
            "title": annotation.url_citation.title,
            "url": annotation.url_citation.url,
            "start_index": annotation.url_citation.start_index,
            "end_index": annotation.url_citation.end_index,
        }
        for annotation in message.annotations or []
        if annotation.type == "url_citation"
    ]

    return ToolResponse.ok(
        {
            "content": message.content or "No content returned from search",
            "citations": citations,
            "provider": "openai",
            "query": query,
        }
    ).to_dict()


async def web_search(query: str) -> dict:
    """Search the web with the provider named by SEARCH_PROVIDER.

    Args:
        query: Natural-language search query

    Returns:
        Envelope with Google results (title, link, snippet) or an OpenAI
        answer with URL citations
    """
    if not query or not query.strip():
        return _invalid("query must not be empty")

    provider = os.getenv("SEARCH_PROVIDER", "google").lower()
    logger.debug(f"web_search via {provider}: {query!r}")

    match provider:
        case "google":
            return await _search_with_google(query)
        case "openai":
            return await _search_with_openai(query)
        case _:
            return ToolResponse.fail(
                f"Unsupported search provider '{provider}'. "
                'Set SEARCH_PROVIDER to "google" or "openai".',
                "CONFIG_ERROR",
            ).to_dict()


def _research_payload(response: Any) -> dict[str, Any]:
    return {
        "id": response.id,
        "status": response.status,
        "model": response.model,
        "outputText": response.output_text,
    }


async def deep_research(
    query: str,
    model: str = "o4-mini-deep-research",
    background: bool = True,
    vector_store_ids: list[str] | None = None,
    use_web_search: bool = True,
    use_code_interpreter: bool = False,
) -> dict:
    """Start a deep research run.

    Args:
        query: Research question
        model: One of DEEP_RESEARCH_MODELS
        background: Return immediately and poll with get_deep_research
        vector_store_ids: Vector stores to search with file_search
        use_web_search: Let the model search the web
        use_code_interpreter: Let the model run code

    Returns:
        Envelope with ``{id, status, model, outputText}``
    """
    if model not in DEEP_RESEARCH_MODELS:
        return _invalid(f"model must be one of {', '.join(DEEP_RESEARCH_MODELS)}")

    tools: list[dict[str, Any]] = []
    if use_web_search:
        tools.append({"type": "web_search_preview"})
    if vector_store_ids:
        tools.append({"type": "file_search", "vector_store_ids": vector_store_ids})
    if use_code_interpreter:
        tools.append({"type": "code_interpreter", "container": {"type": "auto"}})

    # Deep research models refuse to run without a data source
    if not use_web_search and not vector_store_ids:
        return _invalid("deep research needs web search or at least one vector store")

    try:
        client = get_openai_client()
    except ValueError as e:
        return _not_configured(e)

    try:
        response = await client.responses.create(
            model=model,
            input=query,
            background=background,
            tools=tools,
            timeout=DEEP_RESEARCH_TIMEOUT,
        )
    except openai.OpenAIError as e:
        return _openai_failure("deep research", e)

    logger.info(f"Deep research {response.id} started ({response.status})")
    return ToolResponse.ok(_research_payload(response)).to_dict()


async def get_deep_research(response_id: str) -> dict:
    """Fetch the status and, once completed, the report of a research run.

    Args:
        response_id: Id returned by deep_research
    """
    try:
        client = get_openai_client()
    except ValueError as e:
        return _not_configured(e)

    try:
        response = await client.responses.retrieve(response_id)
    except openai.NotFoundError:
        return ToolResponse.fail(f"Research run '{response_id}' not found", "NOT_FOUND").to_dict()
    except openai.OpenAIError as e:
        return _openai_failure("deep research", e)

    return ToolResponse.ok(_research_payload(response)).to_dict()
