"""HTTP client for the Kizeo Forms REST API."""

import asyncio
from typing import Any, Dict, List, Optional

import aiohttp

from kizeo_jobs.errors import RemoteHttpError

# aiohttp raises asyncio.TimeoutError, not a ClientError, when the total timeout expires
TRANSPORT_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError)


class KizeoApiClient:
    """HTTP client for calling the forms provider."""

    def __init__(
        self,
        base_url: str,
        api_token: str,
        timeout: float = 30.0,
        media_timeout: float = 60.0,
        pdf_timeout: float = 90.0,
    ):
        """
        Initialize HTTP client.

        Args:
            base_url: Base URL of the provider API (e.g., "https://forms.kizeo.com/rest/v3")
            api_token: API token sent verbatim in the Authorization header
            timeout: Request timeout in seconds for list calls
            media_timeout: Request timeout in seconds for media downloads
            pdf_timeout: Request timeout in seconds for PDF downloads
        """
        self.base_url = base_url.rstrip("/")
        self.api_token = api_token
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self.media_timeout = aiohttp.ClientTimeout(total=media_timeout)
        self.pdf_timeout = aiohttp.ClientTimeout(total=pdf_timeout)

    def _headers(self, content_type: Optional[str] = None) -> Dict[str, str]:
        headers = {"Authorization": self.api_token}
        if content_type:
            headers["Content-Type"] = content_type
        return headers

    async def fetch_binary(self, form_id: str, record_id: str, media_ref: str) -> bytes:
        """
        Download one media file attached to a form record.

        Raises:
            RemoteHttpError: If the HTTP request fails
        """
        url = f"{self.base_url}/forms/{form_id}/data/{record_id}/medias/{media_ref}"
        return await self._get_bytes(url, self.media_timeout, f"media {media_ref}")

    async def fetch_pdf(self, form_id: str, record_id: str) -> bytes:
        """
        Download the rendered PDF of a form record.

        Raises:
            RemoteHttpError: If the HTTP request fails
        """
        url = f"{self.base_url}/forms/{form_id}/data/{record_id}/pdf"
        return await self._get_bytes(url, self.pdf_timeout, "PDF")

    async def _get_bytes(
        self, url: str, timeout: aiohttp.ClientTimeout, what: str
    ) -> bytes:
        async with aiohttp.ClientSession(timeout=timeout) as session:
            try:
                async with session.get(url, headers=self._headers()) as resp:
                    if resp.status >= 400:
                        response_body = await resp.text()
                        raise RemoteHttpError(
                            status_code=resp.status,
                            message=f"Failed to fetch {what}: {response_body[:200]}",
                            response_body=response_body,
                        )

                    return await resp.read()

            except TRANSPORT_ERRORS as e:
                raise RemoteHttpError(
                    status_code=0,
                    message=f"Network error: {str(e) or type(e).__name__}",
                ) from e

    async def fetch_list(self, list_id: str) -> List[str]:
        """
        Get the items of an external list.

        Returns:
            List of serialized lines, in provider order

        Raises:
            RemoteHttpError: If the HTTP request fails or the payload is malformed
        """
        url = f"{self.base_url}/lists/{list_id}"

        async with aiohttp.ClientSession(timeout=self.timeout) as session:
            try:
                async with session.get(url, headers=self._headers()) as resp:
                    if resp.status >= 400:
                        response_body = await resp.text()
                        raise RemoteHttpError(
                            status_code=resp.status,
                            message=f"Failed to fetch list {list_id}: {response_body[:200]}",
                            response_body=response_body,
                        )

                    try:
                        data: Any = await resp.json(content_type=None)
                    except ValueError as e:
                        raise RemoteHttpError(
                            status_code=resp.status,
                            message=f"List {list_id} response is not valid JSON: {e}",
                        ) from e

            except TRANSPORT_ERRORS as e:
                raise RemoteHttpError(
                    status_code=0,
                    message=f"Network error: {str(e) or type(e).__name__}",
                ) from e

        listing = data.get("list") if isinstance(data, dict) else None
        items = listing.get("items") if isinstance(listing, dict) else None
        if not isinstance(items, list):
            raise RemoteHttpError(
                status_code=resp.status,
                message=f"List {list_id} response has no items",
            )
        return [str(item) for item in items]

    async def replace_list(self, list_id: str, items: List[str]) -> None:
        """
        Overwrite an external list with the given items.

        Raises:
            RemoteHttpError: If the HTTP request fails
        """
        url = f"{self.base_url}/lists/{list_id}"

        async with aiohttp.ClientSession(timeout=self.timeout) as session:
            try:
                async with session.put(
                    url,
                    json={"items": items},
                    headers=self._headers("application/json"),
                ) as resp:
                    if resp.status >= 400:
                        response_body = await resp.text()
                        raise RemoteHttpError(
                            status_code=resp.status,
                            message=f"Failed to replace list {list_id}: {response_body[:200]}",
                            response_body=response_body,
                        )

            except TRANSPORT_ERRORS as e:
                raise RemoteHttpError(
                    status_code=0,
                    message=f"Network error: {str(e) or type(e).__name__}",
                ) from e
