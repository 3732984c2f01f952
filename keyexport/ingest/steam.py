"""Steam ownership lookup with a storage-backed cache."""

from __future__ import annotations

import logging
import os

import httpx

from keyexport.exceptions import DecodeError
from keyexport.store.kv import KeyValueStore
from keyexport.store.records import compress, decompress

logger = logging.getLogger(__name__)

STEAM_USERDATA_URL = "https://store.steampowered.com/dynamicstore/userdata"
OWNED_APPS_KEY = "hb-key-exporter-ownedApps"
FETCH_TIMEOUT = 5.0


class SteamClient:
    def __init__(self, *, session: httpx.AsyncClient | None = None, timeout: float = FETCH_TIMEOUT) -> None:
        self._session = session or httpx.AsyncClient(timeout=timeout)
        self.timeout = timeout

    async def close(self) -> None:
        await self._session.aclose()

    async def fetch_owned(self) -> list[int]:
        """Owned package and app ids. Raises on any transport or payload problem."""
        response = await self._session.get(STEAM_USERDATA_URL, timeout=self.timeout)
        response.raise_for_status()
        data = response.json()
        if not isinstance(data, dict):
            raise ValueError("Unexpected userdata payload")
        packages = data.get("rgOwnedPackages") or []
        apps = data.get("rgOwnedApps") or []
        return [int(value) for value in [*packages, *apps]]


class OwnedAppsCache:
    """In-memory cache over a persisted copy of the owned id list.

    A forced refresh skips only the in-memory layer: a persisted list is
    still returned when present. ``invalidate`` clears both layers.
    """

    def __init__(self, store: KeyValueStore, client: SteamClient) -> None:
        self.store = store
        self.client = client
        self._owned: list[int] = []

    async def load(self, force_refresh: bool = False) -> list[int]:
        if not force_refresh and self._owned:
            logger.debug("Using cached owned apps")
            return self._owned

        persisted = self._load_persisted()
        if persisted is not None:
            return persisted

        logger.debug("Fetching owned apps from Steam")
        try:
            owned = await self.client.fetch_owned()
        except (httpx.HTTPError, ValueError, TypeError) as exc:
            logger.warning("Could not fetch owned apps: %s", exc)
            return []
        self._owned = owned
        self.store.set(OWNED_APPS_KEY, compress(owned))
        return owned

    def invalidate(self) -> None:
        self._owned = []
        self.store.delete(OWNED_APPS_KEY)

    def _load_persisted(self) -> list[int] | None:
        raw = self.store.get(OWNED_APPS_KEY)
        if not raw:
            return None
        try:
            data = decompress(raw, key=OWNED_APPS_KEY)
        except DecodeError as exc:
            logger.warning("Ignoring persisted owned apps: %s", exc.reason)
            return None
        if not isinstance(data, list):
            return None
        return [int(value) for value in data if isinstance(value, int)]


def steam_client_from_env() -> SteamClient:
    cookies = httpx.Cookies()
    login = os.environ.get("STEAM_LOGIN_SECURE")
    if login:
        cookies.set("steamLoginSecure", login, domain="store.steampowered.com")
    return SteamClient(session=httpx.AsyncClient(timeout=FETCH_TIMEOUT, cookies=cookies))
