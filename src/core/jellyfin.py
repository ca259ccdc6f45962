"""Jellyfin Client."""

import asyncio
from collections.abc import Iterable
from typing import Any, Protocol

import aiohttp

from src import __version__, log
from src.exceptions import (
    FetchError,
    LibraryAuthError,
    LibraryError,
    PartialFetchError,
    UpdateError,
)
from src.models.media import Collection, MediaItem, MediaKind

__all__ = ["JellyfinClient", "LibraryClient"]

# Fields requested when reading an item before rewriting it
RECORD_FIELDS = (
    "Path",
    "ProviderIds",
    "People",
    "Studios",
    "Genres",
    "Tags",
    "Overview",
)
LIST_FIELDS = ("Tags", "ProviderIds")


class LibraryClient(Protocol):
    """Narrow view of the media library used by the reconciliation engine."""

    async def initialize(self) -> None: ...

    async def close(self) -> None: ...

    async def list_items(
        self, kind: MediaKind, tags: Iterable[str] | None = None
    ) -> list[MediaItem]: ...

    async def get_item(self, item_id: str) -> dict[str, Any]: ...

    async def update_item(self, item_id: str, record: dict[str, Any]) -> None: ...

    async def list_collections(self, kind: MediaKind) -> list[Collection]: ...

    async def list_collection_members(
        self, collection_id: str, kind: MediaKind
    ) -> list[MediaItem]: ...

    async def is_administrator(self) -> bool: ...


class JellyfinClient:
    """Client for the Jellyfin REST API.

    All requests share a single aiohttp session authenticated with the
    ``X-Emby-Token`` header. Queries are issued from the point of view of
    ``user_id``, which is resolved from the token when not configured.
    """

    MAX_RETRIES = 3

    def __init__(
        self,
        url: str,
        token: str,
        user_id: str | None = None,
        request_timeout: float = 30.0,
    ) -> None:
        """Initialize the Jellyfin client.

        Args:
            url (str): Base URL of the Jellyfin server, without a trailing slash.
            token (str): API key or user access token.
            user_id (str | None): User whose library view is queried.
            request_timeout (float): Total timeout for a single request in seconds.
        """
        self.url = url.rstrip("/")
        self.token = token
        self.user_id = user_id
        self.request_timeout = request_timeout
        self._session: aiohttp.ClientSession | None = None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create the aiohttp session.

        Returns:
            aiohttp.ClientSession: The active session for making HTTP requests.
        """
        if self._session is None or self._session.closed:
            headers = {
                "Accept": "application/json",
                "User-Agent": f"CollectionMarker/{__version__}",
                "X-Emby-Token": self.token,
            }
            self._session = aiohttp.ClientSession(
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=self.request_timeout),
            )
        return self._session

    async def close(self) -> None:
        """Close the aiohttp session."""
        if self._session and not self._session.closed:
            await self._session.close()

    async def initialize(self) -> None:
        """Resolve the user id from the token when it was not configured.

        Raises:
            LibraryAuthError: If the token is rejected.
            FetchError: If the current user cannot be determined.
        """
        if self.user_id:
            return
        user = await self._make_request("GET", "/Users/Me")
        if not isinstance(user, dict) or not user.get("Id"):
            raise FetchError("Could not resolve the Jellyfin user for the token")
        self.user_id = user["Id"]
        log.info(f"Resolved Jellyfin user $$'{user.get('Name', self.user_id)}'$$")

    def _user_path(self, suffix: str = "") -> str:
        if not self.user_id:
            raise FetchError("Jellyfin client used before a user id was resolved")
        return f"/Users/{self.user_id}{suffix}"

    async def list_items(
        self, kind: MediaKind, tags: Iterable[str] | None = None
    ) -> list[MediaItem]:
        """Fetch every item of ``kind`` in the library, with tags and provider ids.

        Args:
            kind (MediaKind): Media kind to list.
            tags (Iterable[str] | None): Only return items carrying one of these tags.

        Returns:
            list[MediaItem]: All matching items.

        Raises:
            FetchError: If the query fails.
        """
        params = {
            "IncludeItemTypes": kind.item_type,
            "Recursive": "true",
            "Fields": ",".join(LIST_FIELDS),
        }
        if tags:
            params["Tags"] = "|".join(tags)
        data = await self._make_request("GET", self._user_path("/Items"), params=params)
        return [MediaItem.from_record(record) for record in _items(data)]

    async def get_item(self, item_id: str) -> dict[str, Any]:
        """Fetch the full record of a single item.

        Raises:
            FetchError: If the query fails or the item does not exist.
        """
        data = await self._make_request(
            "GET",
            self._user_path("/Items"),
            params={"Ids": item_id, "Fields": ",".join(RECORD_FIELDS)},
        )
        items = _items(data)
        if not items:
            raise FetchError(f"Item '{item_id}' not found")
        return items[0]

    async def update_item(self, item_id: str, record: dict[str, Any]) -> None:
        """Replace the metadata of an item with ``record``.

        Raises:
            UpdateError: If the server rejects the update or it fails in transit.
        """
        try:
            await self._make_request("POST", f"/Items/{item_id}", json=record)
        except LibraryError as e:
            raise UpdateError(item_id, str(e)) from e

    async def list_collections(self, kind: MediaKind) -> list[Collection]:
        """Fetch all collections (BoxSets) visible to the user.

        BoxSets are not typed, so every collection is returned regardless of
        ``kind``; members are filtered per kind when they are fetched.

        Raises:
            FetchError: If the query fails.
        """
        data = await self._make_request(
            "GET",
            self._user_path("/Items"),
            params={"IncludeItemTypes": "BoxSet", "Recursive": "true"},
        )
        return [
            Collection(id=record["Id"], name=record.get("Name") or "")
            for record in _items(data)
        ]

    async def list_collection_members(
        self, collection_id: str, kind: MediaKind
    ) -> list[MediaItem]:
        """Fetch the items of ``kind`` contained in a collection.

        Raises:
            PartialFetchError: If the members of this collection cannot be fetched.
        """
        try:
            data = await self._make_request(
                "GET",
                self._user_path("/Items"),
                params={
                    "ParentId": collection_id,
                    "IncludeItemTypes": kind.item_type,
                    "Fields": ",".join(LIST_FIELDS),
                },
            )
        except FetchError as e:
            raise PartialFetchError(collection_id, str(e)) from e
        return [MediaItem.from_record(record) for record in _items(data)]

    async def is_administrator(self) -> bool:
        """Return whether the resolved user has the administrator policy.

        Raises:
            FetchError: If the user cannot be fetched.
        """
        user = await self._make_request("GET", self._user_path())
        if not isinstance(user, dict):
            return False
        policy = user.get("Policy") or {}
        return bool(policy.get("IsAdministrator", False))

    async def _make_request(
        self,
        method: str,
        path: str,
        params: dict[str, str] | None = None,
        json: dict[str, Any] | None = None,
        retry_count: int = 0,
    ) -> Any:
        """Makes a request to the Jellyfin API.

        Retries on rate limiting, bad gateway responses and connection errors.

        Args:
            method (str): HTTP method.
            path (str): Path relative to the server URL.
            params (dict[str, str] | None): Query parameters.
            json (dict[str, Any] | None): JSON body.
            retry_count (int): Number of retries attempted.

        Returns:
            Any: Decoded JSON response, or None for empty responses.

        Raises:
            LibraryAuthError: If the token is rejected.
            FetchError: If the request fails for any other reason.
        """
        if retry_count >= self.MAX_RETRIES:
            raise FetchError(
                f"Failed to make request to {path} after {self.MAX_RETRIES} tries"
            )

        session = await self._get_session()

        try:
            async with session.request(
                method, f"{self.url}{path}", params=params, json=json
            ) as response:
                if response.status == 429:
                    retry_after = int(response.headers.get("Retry-After", 5))
                    log.warning(f"Rate limit exceeded, waiting {retry_after} seconds")
                    await asyncio.sleep(retry_after + 1)
                    return await self._make_request(
                        method, path, params, json, retry_count + 1
                    )
                elif response.status == 502:
                    log.warning("Received 502 Bad Gateway, retrying")
                    await asyncio.sleep(1)
                    return await self._make_request(
                        method, path, params, json, retry_count + 1
                    )
                elif response.status in (401, 403):
                    raise LibraryAuthError(
                        f"Jellyfin rejected the request to {path} ({response.status})"
                    )

                if response.status >= 400:
                    response_text = await response.text()
                    log.error(f"{method} {path} failed with status {response.status}")
                    log.error(f"\t\t{response_text}")
                    raise FetchError(
                        f"{method} {path} failed with status {response.status}"
                    )

                if response.status == 204 or response.content_length == 0:
                    return None
                try:
                    return await response.json(content_type=None)
                except ValueError as e:
                    raise FetchError(
                        f"{method} {path} returned a body that is not JSON"
                    ) from e

        except (TimeoutError, aiohttp.ClientError):
            log.error(f"Connection error while requesting {path}")
            await asyncio.sleep(1)
            return await self._make_request(method, path, params, json, retry_count + 1)


def _items(data: Any) -> list[dict[str, Any]]:
    """Extract the ``Items`` array of a query result."""
    if not isinstance(data, dict):
        return []
    return list(data.get("Items") or [])
