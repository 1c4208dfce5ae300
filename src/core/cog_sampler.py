"""
Center of Gravity Sampling Module.

Computes the instantaneous center of gravity of a skeleton from its
current local transforms, used as a proxy for root displacement.
"""

import logging
import numpy as np
from typing import Hashable, Iterator, List, Optional

from core.errors import MissingRootBone, ZeroMassNodes
from core.transforms import Transform

logger = logging.getLogger(__name__)


# Deformation bones are marked with this name prefix by the rigging pipeline
DEFAULT_MASS_MARKER_PREFIX = "DEF"


def iter_descendants(hierarchy, root: Hashable) -> Iterator[Hashable]:
    """
    Breadth-first traversal of every node below ``root`` (root excluded).

    Args:
        hierarchy: Object providing ``children_of(node)``
        root: Node to start from
    """
    queue: List[Hashable] = list(hierarchy.children_of(root))
    index = 0
    while index < len(queue):
        node = queue[index]
        index += 1
        queue.extend(hierarchy.children_of(node))
        yield node


def relative_transform(node: Hashable, root: Hashable, hierarchy, transforms) -> Transform:
    """
    Compose ancestor transforms from ``node`` up to (not including) ``root``.

    Args:
        node: A descendant of root
        root: Skeleton root the result is expressed relative to
        hierarchy: Object providing ``parent_of(node)``
        transforms: Object providing ``get(node) -> Optional[Transform]``

    Returns:
        Transform of ``node`` in the root's local space
    """
    result = Transform.identity()
    current = node
    while True:
        transform = transforms.get(current)
        if transform is None:
            break
        parent = hierarchy.parent_of(current)
        if parent is None:
            break
        result = transform.mul_transform(result)
        if parent == root:
            break
        current = parent
    return result


class CogSampler:
    """
    Samples the weighted center of gravity of a skeleton.

    A descendant is mass-bearing when its name starts with the marker
    prefix. Unnamed nodes count when ``unnamed_nodes_are_mass_bearing`` is
    set; named nodes without the marker never count.
    """

    def __init__(
        self,
        marker_prefix: str = DEFAULT_MASS_MARKER_PREFIX,
        unnamed_nodes_are_mass_bearing: bool = True,
    ):
        self.marker_prefix = marker_prefix
        self.unnamed_nodes_are_mass_bearing = unnamed_nodes_are_mass_bearing

    @classmethod
    def from_settings(cls, settings) -> "CogSampler":
        return cls(
            marker_prefix=settings.mass_marker_prefix,
            unnamed_nodes_are_mass_bearing=settings.unnamed_nodes_are_mass_bearing,
        )

    def is_mass_bearing(self, name: Optional[str]) -> bool:
        if name is None:
            return self.unnamed_nodes_are_mass_bearing
        return name.startswith(self.marker_prefix)

    def mass_bearing_nodes(self, root: Hashable, hierarchy, names) -> List[Hashable]:
        return [
            node for node in iter_descendants(hierarchy, root)
            if self.is_mass_bearing(names.name_of(node))
        ]

    def compute_cog(self, root: Hashable, hierarchy, transforms, names) -> np.ndarray:
        """
        Average root-relative position of all mass-bearing descendants.

        Args:
            root: Skeleton root node
            hierarchy: Provides ``children_of`` and ``parent_of``
            transforms: Provides ``get(node)``
            names: Provides ``name_of(node)``

        Returns:
            3D point in the root's local space

        Raises:
            ZeroMassNodes: If no descendant is mass-bearing
        """
        total = np.zeros(3)
        count = 0
        for node in self.mass_bearing_nodes(root, hierarchy, names):
            total += relative_transform(node, root, hierarchy, transforms).translation
            count += 1

        if count == 0:
            raise ZeroMassNodes(root)

        logger.debug("COG of %r averaged over %d nodes", root, count)
        return total / count

    def root_bone_position(
        self,
        root: Hashable,
        bone_name: str,
        hierarchy,
        transforms,
        names,
    ) -> np.ndarray:
        """
        Root-relative position of the first descendant named ``bone_name``.

        Raises:
            MissingRootBone: If no descendant carries that name
        """
        for node in iter_descendants(hierarchy, root):
            if names.name_of(node) == bone_name:
                return relative_transform(node, root, hierarchy, transforms).translation
        raise MissingRootBone(root, bone_name)
