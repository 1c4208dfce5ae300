"""
Scene Adapter Module.

Capability interfaces the bake service consumes from the host scene, and
an in-memory scene implementing all of them. The in-memory scene lets the
baking pipeline run and be tested without a host engine.
"""

import logging
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Dict, Hashable, Iterator, List, Optional

from core.cog_sampler import iter_descendants
from core.errors import HierarchyCycleError, TransformStoreBusy
from core.transforms import Transform

logger = logging.getLogger(__name__)


class HierarchyProvider(ABC):
    """Parent/child lookup for skeleton nodes."""

    @abstractmethod
    def children_of(self, node: Hashable) -> List[Hashable]:
        ...

    @abstractmethod
    def parent_of(self, node: Hashable) -> Optional[Hashable]:
        ...


class TransformStore(ABC):
    """Local transform storage, written by the pose evaluator while baking."""

    @abstractmethod
    def get(self, node: Hashable) -> Optional[Transform]:
        ...

    @abstractmethod
    def set(self, node: Hashable, transform: Transform) -> None:
        ...

    @abstractmethod
    def exclusive(self):
        """Context manager holding exclusive write access for one bake."""


class NameLookup(ABC):

    @abstractmethod
    def name_of(self, node: Hashable) -> Optional[str]:
        ...


class PoseEvaluator(ABC):
    """Scrubs a clip to a time and writes the resulting pose."""

    @abstractmethod
    def scrub_to(self, clip, time: float) -> None:
        ...

    @abstractmethod
    def apply_pose(self, transforms: TransformStore):
        ...


class InMemoryScene(HierarchyProvider, TransformStore, NameLookup):
    """
    Skeleton storage held in plain dictionaries.

    Nodes are integer ids handed out by ``add_node``. Parent/child links are
    kept consistent in both directions and re-parenting that would create a
    cycle is rejected.
    """

    def __init__(self):
        self._transforms: Dict[int, Transform] = {}
        self._names: Dict[int, str] = {}
        self._parents: Dict[int, int] = {}
        self._children: Dict[int, List[int]] = {}
        self._next_id = 0
        self._exclusive_lock = threading.Lock()

    # =========================================================================
    # Construction
    # =========================================================================

    def add_node(
        self,
        name: Optional[str] = None,
        transform: Optional[Transform] = None,
        parent: Optional[int] = None,
    ) -> int:
        """
        Create a node and return its id.

        Args:
            name: Optional display name
            transform: Local transform (identity if omitted)
            parent: Optional parent node id
        """
        node = self._next_id
        self._next_id += 1
        self._transforms[node] = transform.copy() if transform is not None else Transform.identity()
        self._children[node] = []
        if name is not None:
            self._names[node] = name
        if parent is not None:
            self.set_parent(node, parent)
        logger.debug("Added node %d (name=%s, parent=%s)", node, name, parent)
        return node

    def set_parent(self, node: int, parent: Optional[int]) -> None:
        if node not in self._transforms:
            raise KeyError(f"Unknown node {node}")
        if parent is not None:
            if parent not in self._transforms:
                raise KeyError(f"Unknown parent node {parent}")
            ancestor = parent
            while ancestor is not None:
                if ancestor == node:
                    raise HierarchyCycleError(f"Parenting {node} under {parent} creates a cycle")
                ancestor = self._parents.get(ancestor)

        old_parent = self._parents.pop(node, None)
        if old_parent is not None:
            self._children[old_parent].remove(node)
        if parent is not None:
            self._parents[node] = parent
            self._children[parent].append(node)

    def set_name(self, node: int, name: Optional[str]) -> None:
        if name is None:
            self._names.pop(node, None)
        else:
            self._names[node] = name

    def find_by_name(self, name: str) -> Optional[int]:
        for node, node_name in self._names.items():
            if node_name == name:
                return node
        return None

    def nodes(self) -> List[int]:
        return list(self._transforms)

    def descendants(self, root: int) -> List[int]:
        return list(iter_descendants(self, root))

    # =========================================================================
    # Capabilities
    # =========================================================================

    def children_of(self, node: Hashable) -> List[int]:
        return list(self._children.get(node, []))

    def parent_of(self, node: Hashable) -> Optional[int]:
        return self._parents.get(node)

    def name_of(self, node: Hashable) -> Optional[str]:
        return self._names.get(node)

    def get(self, node: Hashable) -> Optional[Transform]:
        return self._transforms.get(node)

    def set(self, node: Hashable, transform: Transform) -> None:
        if node not in self._transforms:
            raise KeyError(f"Unknown node {node}")
        self._transforms[node] = transform

    @property
    def is_exclusively_held(self) -> bool:
        return self._exclusive_lock.locked()

    @contextmanager
    def exclusive(self) -> Iterator["InMemoryScene"]:
        """
        Hold exclusive write access for the duration of the block.

        Raises:
            TransformStoreBusy: If another bake already holds access
        """
        if not self._exclusive_lock.acquire(blocking=False):
            raise TransformStoreBusy("Transform store is held by another bake")
        try:
            yield self
        finally:
            self._exclusive_lock.release()
