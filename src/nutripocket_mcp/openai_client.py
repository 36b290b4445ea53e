"""Shared OpenAI client for the speech, web search and deep research tools."""

import logging
import os

from openai import AsyncOpenAI

logger = logging.getLogger(__name__)

# Singleton client instance
_client_instance: AsyncOpenAI | None = None


def get_openai_client() -> AsyncOpenAI:
    """Get or create the singleton OpenAI client.

    Returns:
        AsyncOpenAI configured from OPENAI_API_KEY

    Raises:
        ValueError: If OPENAI_API_KEY is not set
    """
    global _client_instance

    if _client_instance is None:
        api_key = os.getenv("OPENAI_API_KEY")

        if not api_key:
            raise ValueError(
                "OPENAI_API_KEY environment variable is required for OpenAI tools. "
                "Set it in .env file."
            )

        _client_instance = AsyncOpenAI(api_key=api_key)
        logger.info("Created OpenAI client")

    return _client_instance


async def close_openai_client() -> None:
    """Close the singleton OpenAI client, if one was created."""
    global _client_instance

    if _client_instance is not None:
        await _client_instance.close()
        _client_instance = None
