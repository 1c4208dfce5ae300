"""
Pipeline IO utilities for file handling.

Loads scene descriptions from JSON and persists baked root motion curves
as a directory of JSON files addressed by asset path.
"""

import json
import logging
import os
from typing import Dict, List, Optional, Tuple

from core.errors import SceneFormatError
from core.root_motion import RootMotionCurve
from core.transforms import Transform
from scene.adapter import InMemoryScene
from scene.animation import AnimationClip, AnimationGraph, AnimationGraphNode, AnimationPlayer, TargetCurve
from scene.assets import Assets, AssetStore, Handle
from scene.serialization import deserialize_root_motion_data, serialize_root_motion_data

logger = logging.getLogger(__name__)

CURVE_EXTENSION = ".curve.json"


def find_files(directory: str, extension: str, recursive: bool = False) -> List[str]:
    """
    Find all files in a directory with the given extension.

    Args:
        directory: Path to search
        extension: File extension to match (e.g., ".curve.json")
        recursive: Also search subdirectories

    Returns:
        Sorted list of file paths
    """
    result = []
    if not os.path.isdir(directory):
        return result

    if recursive:
        for dirpath, _dirnames, filenames in os.walk(directory):
            for filename in filenames:
                if filename.lower().endswith(extension.lower()):
                    result.append(os.path.join(dirpath, filename))
    else:
        for filename in os.listdir(directory):
            if filename.lower().endswith(extension.lower()):
                result.append(os.path.join(directory, filename))
    return sorted(result)


# =============================================================================
# Curve library
# =============================================================================

def save_curve_library(curves: Assets, directory: str) -> List[str]:
    """
    Write every curve that has an asset path below ``directory``.

    Curves without a path cannot be found again after a reload and are
    skipped with a warning.

    Returns:
        Paths of the files written
    """
    written = []
    for handle, curve in curves.items():
        asset_path = curves.path_of(handle)
        if asset_path is None:
            logger.warning("Skipping %r: curve has no asset path", handle)
            continue
        file_path = os.path.join(directory, *asset_path.split("/"))
        os.makedirs(os.path.dirname(file_path), exist_ok=True)
        with open(file_path, "w", encoding="utf-8") as handle_out:
            json.dump(curve.to_dict(), handle_out, indent=2)
        written.append(file_path)
    logger.info("Saved %d root motion curves to %s", len(written), directory)
    return written


def load_curve_library(directory: str, curves: Optional[Assets] = None) -> Assets:
    """
    Load every curve file below ``directory`` into a curve collection.

    Asset paths are preserved; asset ids are assigned fresh.
    """
    if curves is None:
        curves = Assets("RootMotionCurve")
    for file_path in find_files(directory, CURVE_EXTENSION, recursive=True):
        asset_path = os.path.relpath(file_path, directory).replace(os.sep, "/")
        with open(file_path, "r", encoding="utf-8") as handle_in:
            curve = RootMotionCurve.from_dict(json.load(handle_in))
        curves.add(curve, path=asset_path)
    logger.info("Loaded %d root motion curves from %s", len(curves), directory)
    return curves


# =============================================================================
# Scene descriptions
# =============================================================================

class LoadedScene:
    """A scene description turned into live objects."""

    def __init__(self, scene: InMemoryScene, assets: AssetStore):
        self.scene = scene
        self.assets = assets
        # (skeleton name, skeleton root node, player, graph handle)
        self.owners: List[Tuple[str, int, AnimationPlayer, Handle]] = []


def _require(data: dict, key: str, where: str):
    if key not in data:
        raise SceneFormatError(f"Missing '{key}' in {where}")
    return data[key]


def _build_transform(data: dict) -> Transform:
    return Transform(
        translation=data.get("translation"),
        rotation=data.get("rotation"),
        scale=data.get("scale"),
    )


def _build_clip(data: dict, where: str) -> AnimationClip:
    curves = {}
    for target, curve_data in _require(data, "targets", where).items():
        curves[target] = TargetCurve(
            _require(curve_data, "timestamps", f"{where}/{target}"),
            translations=curve_data.get("translations"),
            rotations=curve_data.get("rotations"),
            scales=curve_data.get("scales"),
        )
    return AnimationClip(curves, duration=data.get("duration"))


def _build_graph(data: dict, clip_handles: Dict[str, Handle], curves: Assets, where: str) -> AnimationGraph:
    graph = AnimationGraph()
    for index, node_data in enumerate(data.get("nodes", [])):
        clip_handle = None
        clip_path = node_data.get("clip")
        if clip_path is not None:
            # Unknown clips stay unresolved; baking skips such nodes
            clip_handle = clip_handles.get(clip_path)
            if clip_handle is None:
                logger.warning("%s node %d: clip '%s' not found", where, index, clip_path)
        root_motion = None
        if node_data.get("root_motion") is not None:
            root_motion = deserialize_root_motion_data(node_data["root_motion"], curves)
        graph.add_node(
            AnimationGraphNode(
                clip=clip_handle,
                weight=node_data.get("weight", 1.0),
                root_motion=root_motion,
                name=node_data.get("name"),
            ),
            parent=node_data.get("parent", graph.root),
        )
    return graph


def load_scene(path: str, curve_library: Optional[str] = None) -> LoadedScene:
    """
    Load a JSON scene description.

    Layout::

        {
          "clips": {"<clip path>": {"duration": 1.0, "targets": {...}}},
          "graphs": {"<graph path>": {"nodes": [...]}},
          "skeletons": [{"name": ..., "root": "<node id>", "graph": "<graph path>",
                         "nodes": [{"id": ..., "name": ..., "parent": ..., "translation": ...}]}]
        }

    Args:
        path: Scene description file
        curve_library: Optional directory of previously baked curves, used to
            resolve curve references stored in the graphs

    Returns:
        LoadedScene with the scene, assets and graph owners
    """
    try:
        with open(path, "r", encoding="utf-8") as handle_in:
            data = json.load(handle_in)
    except json.JSONDecodeError as e:
        raise SceneFormatError(f"{path}: {e}") from e

    assets = AssetStore()
    if curve_library is not None:
        load_curve_library(curve_library, assets.curves)

    loaded = LoadedScene(InMemoryScene(), assets)

    clip_handles = {}
    for clip_path, clip_data in data.get("clips", {}).items():
        clip_handles[clip_path] = assets.clips.add(_build_clip(clip_data, clip_path), path=clip_path)

    graph_handles = {}
    for graph_path, graph_data in data.get("graphs", {}).items():
        graph = _build_graph(graph_data, clip_handles, assets.curves, graph_path)
        graph_handles[graph_path] = assets.graphs.add(graph, path=graph_path)

    for index, skeleton in enumerate(data.get("skeletons", [])):
        where = f"skeleton {index}"
        skeleton_name = skeleton.get("name", where)
        node_ids = {}
        pending_parents = []
        for node_data in _require(skeleton, "nodes", where):
            key = node_data.get("id", node_data.get("name"))
            if key is None:
                raise SceneFormatError(f"Node in {where} needs an 'id' or 'name'")
            if key in node_ids:
                raise SceneFormatError(f"Duplicate node '{key}' in {where}")
            node_ids[key] = loaded.scene.add_node(
                name=node_data.get("name"), transform=_build_transform(node_data)
            )
            if node_data.get("parent") is not None:
                pending_parents.append((key, node_data["parent"]))

        for key, parent_key in pending_parents:
            if parent_key not in node_ids:
                raise SceneFormatError(f"Unknown parent '{parent_key}' in {where}")
            loaded.scene.set_parent(node_ids[key], node_ids[parent_key])

        root_key = _require(skeleton, "root", where)
        if root_key not in node_ids:
            raise SceneFormatError(f"Unknown root '{root_key}' in {where}")
        root = node_ids[root_key]

        graph_path = _require(skeleton, "graph", where)
        graph_handle = graph_handles.get(graph_path)
        if graph_handle is None:
            # Keep a dangling handle so the owner is reported as missing its graph
            logger.warning("%s: graph '%s' not found", where, graph_path)
            graph_handle = Handle(-1, assets.graphs.kind)

        player = AnimationPlayer.for_skeleton(loaded.scene, root)
        loaded.owners.append((skeleton_name, root, player, graph_handle))

    logger.info(
        "Loaded scene %s: %d clips, %d graphs, %d skeletons",
        path, len(assets.clips), len(assets.graphs), len(loaded.owners),
    )
    return loaded


def export_root_motion(assets: AssetStore, path: str) -> dict:
    """
    Write the serialized root motion data of every graph to ``path``.

    Returns:
        The written record, keyed by graph path (or id) then node index
    """
    records = {}
    for graph_handle, graph in assets.graphs.items():
        graph_key = assets.graphs.path_of(graph_handle) or str(graph_handle.id)
        nodes = {
            str(index): serialize_root_motion_data(node.root_motion, assets.curves)
            for index, node in graph.root_motion_nodes()
        }
        if nodes:
            records[graph_key] = nodes
    with open(path, "w", encoding="utf-8") as handle_out:
        json.dump(records, handle_out, indent=2)
    return records
