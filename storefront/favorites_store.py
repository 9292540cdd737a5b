"""
Favorites sync store: the set of product ids the user has favorited.
"""
import logging
from typing import Tuple

from storefront.api_client import ApiClient
from storefront.sync import SyncStore

logger = logging.getLogger(__name__)


class FavoritesStore(SyncStore):
    """
    Session favorites, kept as an ordered set of product ids.

    toggle() changes the single affected id only after the server confirms,
    rather than refetching the whole list.
    """

    name = "favorites"

    def __init__(self, api: ApiClient):
        super().__init__(api)
        self._product_ids: Tuple[str, ...] = ()

    @property
    def product_ids(self) -> Tuple[str, ...]:
        return self._product_ids

    def is_favorite(self, product_id: str) -> bool:
        return product_id in self._product_ids

    def _reset_state(self) -> None:
        self._product_ids = ()

    def _commit(self, snapshot: Tuple[str, ...]) -> None:
        self._product_ids = snapshot

    async def initialize(self) -> Tuple[str, ...]:
        async def fetch() -> Tuple[str, ...]:
            favorites = await self.api.favorites.get()
            return favorites.product_ids

        await self._run("initialize", fetch)
        return self._product_ids

    async def toggle(self, product_id: str) -> bool:
        """
        Flip membership of product_id.

        Returns:
            Whether product_id is a favorite afterwards
        """

        async def toggle_remote() -> Tuple[str, ...]:
            if self.is_favorite(product_id):
                await self.api.favorites.remove(product_id)
                return tuple(pid for pid in self._product_ids if pid != product_id)
            await self.api.favorites.add(product_id)
            return self._product_ids + (product_id,)

        await self._run("toggle", toggle_remote)
        return self.is_favorite(product_id)

    async def clear(self) -> Tuple[str, ...]:
        async def clear_remote() -> Tuple[str, ...]:
            await self.api.favorites.clear()
            return ()

        await self._run("clear", clear_remote)
        return self._product_ids
