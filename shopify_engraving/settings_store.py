"""Storage backends for per-shop engraving settings."""

import json
import logging
from abc import ABC, abstractmethod
from typing import Dict, Optional

from .admin_client import METAFIELD_NAMESPACE, ShopifyAdminClient
from .config import ShopSettings

logger = logging.getLogger(__name__)

SETTINGS_KEY = "settings"


class BaseSettingsStore(ABC):
    """Abstract settings storage interface."""

    @abstractmethod
    async def get(self, shop: str) -> Optional[ShopSettings]:
        """Get the stored settings for a shop, or None."""

    @abstractmethod
    async def save(self, shop: str, settings: ShopSettings) -> ShopSettings:
        """Store settings for a shop."""

    @abstractmethod
    async def delete(self, shop: str) -> None:
        """Forget a shop (app uninstalled)."""

    async def get_or_default(self, shop: str) -> ShopSettings:
        return await self.get(shop) or ShopSettings()


class InMemorySettingsStore(BaseSettingsStore):
    """In-memory storage for development/testing."""

    def __init__(self):
        self._store: Dict[str, ShopSettings] = {}

    async def get(self, shop: str) -> Optional[ShopSettings]:
        return self._store.get(shop)

    async def save(self, shop: str, settings: ShopSettings) -> ShopSettings:
        self._store[shop] = settings
        return settings

    async def delete(self, shop: str) -> None:
        self._store.pop(shop, None)


class MetafieldSettingsStore(BaseSettingsStore):
    """Settings kept in the shop's ``engraving.settings`` JSON metafield.

    The client is bound to one shop, so ``shop`` only keys the local cache.
    """

    def __init__(self, client: ShopifyAdminClient):
        self.client = client
        self._cache: Dict[str, ShopSettings] = {}

    async def get(self, shop: str) -> Optional[ShopSettings]:
        if shop in self._cache:
            return self._cache[shop]
        metafield = await self.client.get_shop_metafield(METAFIELD_NAMESPACE, SETTINGS_KEY)
        if metafield is None or not metafield.value:
            return None
        try:
            settings = ShopSettings.model_validate(json.loads(metafield.value))
        except (json.JSONDecodeError, ValueError) as e:
            logger.warning("Ignoring unreadable settings metafield for %s: %s", shop, e)
            return None
        self._cache[shop] = settings
        return settings

    async def save(self, shop: str, settings: ShopSettings) -> ShopSettings:
        await self.client.set_shop_metafield(
            METAFIELD_NAMESPACE,
            SETTINGS_KEY,
            settings.model_dump_json(by_alias=True),
            type="json",
        )
        self._cache[shop] = settings
        logger.info("Saved engraving settings for %s", shop)
        return settings

    async def delete(self, shop: str) -> None:
        # the access token is revoked on uninstall; only local state can go
        self._cache.pop(shop, None)
