"""Async client for the Google Custom Search JSON API."""

import logging
import os
from typing import Any

import httpx

from nutripocket_mcp.models import ErrorResponse

logger = logging.getLogger(__name__)

GOOGLE_SEARCH_URL = "https://www.googleapis.com/customsearch/v1"


class GoogleSearchClient:
    """Web search through a Google Programmable Search Engine."""

    def __init__(
        self,
        api_key: str | None = None,
        cse_id: str | None = None,
        timeout: float = 30.0,
    ):
        """Initialize the search client.

        Args:
            api_key: Google API key (defaults to GOOGLE_API_KEY)
            cse_id: Search engine id (defaults to GOOGLE_CSE_ID)
            timeout: Request timeout in seconds
        """
        self.api_key = api_key or os.getenv("GOOGLE_API_KEY", "")
        self.cse_id = cse_id or os.getenv("GOOGLE_CSE_ID", "")
        self.timeout = timeout
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def search(self, query: str) -> dict[str, Any] | ErrorResponse:
        """Run a search.

        Args:
            query: Search terms

        Returns:
            ``{results, provider, query, totalResults}`` or ErrorResponse on failure
        """
        client = await self._get_client()
        params = {"key": self.api_key, "cx": self.cse_id, "q": query}

        try:
            response = await client.get(GOOGLE_SEARCH_URL, params=params)

            if response.status_code in (401, 403):
                return ErrorResponse.auth_error(
                    "Google search rejected GOOGLE_API_KEY / GOOGLE_CSE_ID"
                )

            response.raise_for_status()
            body = response.json()

        except httpx.ConnectError:
            return ErrorResponse.api_error("Cannot connect to Google search")
        except httpx.TimeoutException:
            return ErrorResponse.api_error("Request to Google search timed out")
        except httpx.HTTPStatusError as e:
            return ErrorResponse.api_error(f"HTTP {e.response.status_code}: {e.response.text}")
        except Exception as e:
            return ErrorResponse.api_error(f"Unexpected error: {str(e)}")

        # No "items" key when nothing matched
        results = [
            {
                "title": item.get("title"),
                "link": item.get("link"),
                "snippet": item.get("snippet"),
            }
            for item in body.get("items", [])
        ]
        total = body.get("searchInformation", {}).get("totalResults")

        return {
            "results": results,
            "provider": "google",
            "query": query,
            "totalResults": int(total) if total else len(results),
        }


# Singleton client instance
_client_instance: GoogleSearchClient | None = None


def get_search_client() -> GoogleSearchClient:
    """Get or create the singleton search client.

    Raises:
        ValueError: If GOOGLE_API_KEY or GOOGLE_CSE_ID is not set
    """
    global _client_instance

    if _client_instance is None:
        if not os.getenv("GOOGLE_API_KEY") or not os.getenv("GOOGLE_CSE_ID"):
            raise ValueError(
                "GOOGLE_API_KEY and GOOGLE_CSE_ID environment variables are required "
                "for Google web search. Set them in .env file."
            )

        _client_instance = GoogleSearchClient()
        logger.info("Created Google search client")

    return _client_instance


async def close_search_client() -> None:
    """Close the singleton search client, if one was created."""
    global _client_instance

    if _client_instance is not None:
        await _client_instance.close()
        _client_instance = None
