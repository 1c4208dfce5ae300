"""
Asset Storage Module.

Typed asset collections addressed by handle. Each asset gets an integer id
when added; an optional path gives it a stable name that survives store
rebuilds (ids do not).
"""

import logging
from typing import Dict, Generic, Iterator, Optional, Tuple, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Handle:
    """Reference to an asset in a typed collection."""

    __slots__ = ("id", "kind")

    def __init__(self, asset_id: int, kind: str):
        self.id = int(asset_id)
        self.kind = kind

    def __eq__(self, other) -> bool:
        if not isinstance(other, Handle):
            return NotImplemented
        return self.id == other.id and self.kind == other.kind

    def __hash__(self) -> int:
        return hash((self.id, self.kind))

    def __repr__(self) -> str:
        return f"Handle({self.kind}#{self.id})"


class Assets(Generic[T]):
    """
    Collection of assets of a single kind.

    Assets are never copied on insertion or lookup: ``get`` and ``get_mut``
    return the stored object itself.
    """

    def __init__(self, kind: str):
        self.kind = kind
        self._assets: Dict[int, T] = {}
        self._paths: Dict[int, str] = {}
        self._ids_by_path: Dict[str, int] = {}
        self._next_id = 0

    def add(self, asset: T, path: Optional[str] = None) -> Handle:
        """
        Store an asset and return its handle.

        Args:
            asset: Asset object
            path: Optional stable path; must be unique within the collection
        """
        if path is not None and path in self._ids_by_path:
            raise ValueError(f"{self.kind} path '{path}' is already in use")
        asset_id = self._next_id
        self._next_id += 1
        self._assets[asset_id] = asset
        if path is not None:
            self._paths[asset_id] = path
            self._ids_by_path[path] = asset_id
        logger.debug("Added %s #%d (path=%s)", self.kind, asset_id, path)
        return Handle(asset_id, self.kind)

    def _check_kind(self, handle: Handle) -> None:
        if handle.kind != self.kind:
            raise TypeError(f"Handle of kind '{handle.kind}' used with '{self.kind}' assets")

    def get(self, handle: Optional[Handle]) -> Optional[T]:
        if handle is None:
            return None
        self._check_kind(handle)
        return self._assets.get(handle.id)

    def get_mut(self, handle: Optional[Handle]) -> Optional[T]:
        """Same object as ``get``; marks the caller's intent to mutate it."""
        return self.get(handle)

    def contains(self, handle: Handle) -> bool:
        return self.get(handle) is not None

    def handle_for_id(self, asset_id: int) -> Optional[Handle]:
        if asset_id in self._assets:
            return Handle(asset_id, self.kind)
        return None

    def path_of(self, handle: Handle) -> Optional[str]:
        self._check_kind(handle)
        return self._paths.get(handle.id)

    def resolve_path(self, path: str) -> Optional[Handle]:
        asset_id = self._ids_by_path.get(path)
        if asset_id is None:
            return None
        return Handle(asset_id, self.kind)

    def remove(self, handle: Handle) -> Optional[T]:
        self._check_kind(handle)
        asset = self._assets.pop(handle.id, None)
        path = self._paths.pop(handle.id, None)
        if path is not None:
            del self._ids_by_path[path]
        return asset

    def items(self) -> Iterator[Tuple[Handle, T]]:
        for asset_id, asset in list(self._assets.items()):
            yield Handle(asset_id, self.kind), asset

    def __len__(self) -> int:
        return len(self._assets)


class AssetStore:
    """The clip, graph and root motion curve collections used by baking."""

    def __init__(self):
        self.clips: Assets = Assets("AnimationClip")
        self.graphs: Assets = Assets("AnimationGraph")
        self.curves: Assets = Assets("RootMotionCurve")
