"""
In-memory mirrors of the datastore collections.

SignageState owns the Media Catalog, Playlist Store and Device Registry. Only
its subscription callbacks write to them; everyone else reads snapshots.
Each store swaps in a complete new snapshot per push, so a reader sees either
the previous or the next state of a collection, never a mix.
"""

import logging
from typing import Any, Callable, Dict, Generic, List, Optional, Tuple, TypeVar

from .datastore import DEVICES, MEDIA, PLAYLISTS, Datastore
from .models import MediaItem, Playlist, ScreenDevice

T = TypeVar("T")


class _Collection(Generic[T]):
    """Immutable-snapshot mirror of one collection."""

    def __init__(self, name: str, parse: Callable[[Dict[str, Any]], T]):
        self.name = name
        self._parse = parse
        self._snapshot: Tuple[Tuple[T, ...], Dict[str, T]] = ((), {})
        self.logger = logging.getLogger(__name__)

    def replace(self, documents: List[Dict[str, Any]]):
        items = []
        for document in documents:
            try:
                items.append(self._parse(document))
            except (KeyError, TypeError, ValueError) as e:
                self.logger.warning(
                    "Skipping malformed %s document %s: %s", self.name, document.get("id"), e
                )
        ordered = tuple(items)
        # Single assignment: readers get the old or the new pair, never half of each
        self._snapshot = (ordered, {item.id: item for item in ordered})
        self.logger.debug("%s mirror now holds %s documents", self.name, len(ordered))

    def all(self) -> Tuple[T, ...]:
        return self._snapshot[0]

    def get(self, item_id: Optional[str]) -> Optional[T]:
        if item_id is None:
            return None
        return self._snapshot[1].get(item_id)

    def __len__(self) -> int:
        return len(self._snapshot[0])


class MediaCatalog(_Collection[MediaItem]):
    def __init__(self):
        super().__init__(MEDIA, MediaItem.from_dict)


class PlaylistStore(_Collection[Playlist]):
    def __init__(self):
        super().__init__(PLAYLISTS, Playlist.from_dict)


class DeviceRegistry(_Collection[ScreenDevice]):
    def __init__(self):
        super().__init__(DEVICES, ScreenDevice.from_dict)


class SignageState:
    """Coordinator owning the three mirrors and their subscriptions."""

    def __init__(self, datastore: Datastore):
        """
        Initialize SignageState.

        Args:
            datastore: Datastore to mirror
        """
        self.datastore = datastore
        self.media = MediaCatalog()
        self.playlists = PlaylistStore()
        self.devices = DeviceRegistry()
        self.logger = logging.getLogger(__name__)
        self._unsubscribers: List[Callable[[], None]] = []

    def start(self):
        """Subscribe to all collections (each pushes its current snapshot immediately)."""
        if self._unsubscribers:
            return
        for store in (self.media, self.playlists, self.devices):
            self._unsubscribers.append(self.datastore.subscribe(store.name, store.replace))
        self.logger.info(
            "Mirroring %s media, %s playlists, %s devices",
            len(self.media),
            len(self.playlists),
            len(self.devices),
        )

    def stop(self):
        """Cancel all subscriptions."""
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []
