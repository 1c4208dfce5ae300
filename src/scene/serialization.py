"""
Root motion data serialization.

Curve references are written as a stable asset path when the store knows
one, and as the raw asset id otherwise. Ids are reassigned whenever the
store is rebuilt, so the id form should not be relied upon.
"""

import logging
from typing import Optional

from core.errors import AssetResolutionFailure
from core.root_motion import RootMotionBakeType, RootMotionData
from scene.assets import Assets, Handle

logger = logging.getLogger(__name__)

PATH_KEY = "Path"
ID_KEY = "Id"


def serialize_curve_reference(handle: Optional[Handle], curves: Assets) -> Optional[dict]:
    """
    Serialize a curve handle as ``{"Path": str}`` or ``{"Id": int}``.

    Args:
        handle: Curve handle, or None for an unbaked curve
        curves: Curve collection the handle belongs to

    Returns:
        Reference record, or None if ``handle`` is None
    """
    if handle is None:
        return None
    path = curves.path_of(handle)
    if path is not None:
        return {PATH_KEY: path}
    logger.warning(
        "Root motion curve %r has no asset path; serializing unstable id %d",
        handle, handle.id,
    )
    return {ID_KEY: handle.id}


def resolve_curve_reference(record: dict, curves: Assets) -> Handle:
    """
    Resolve a reference record to a live curve handle.

    The path form is tried first, then the id form.

    Raises:
        AssetResolutionFailure: If neither form resolves to a stored curve
    """
    if not isinstance(record, dict):
        raise AssetResolutionFailure()

    path = record.get(PATH_KEY)
    asset_id = record.get(ID_KEY)

    if isinstance(path, str):
        handle = curves.resolve_path(path)
        if handle is not None:
            return handle
    if asset_id is not None:
        try:
            handle = curves.handle_for_id(int(asset_id))
        except (TypeError, ValueError):
            handle = None
        if handle is not None:
            return handle
    raise AssetResolutionFailure(path=path, asset_id=asset_id)


def serialize_root_motion_data(data: RootMotionData, curves: Assets) -> dict:
    record = {
        "bake_type": data.bake_type.value,
        "curve": serialize_curve_reference(data.curve, curves),
    }
    if data.root_bone is not None:
        record["root_bone"] = data.root_bone
    return record


def deserialize_root_motion_data(record: dict, curves: Assets) -> RootMotionData:
    """
    Rebuild RootMotionData from its serialized form.

    Raises:
        AssetResolutionFailure: If the curve reference does not resolve
        ValueError: If the bake type is unknown
    """
    bake_type = RootMotionBakeType(record["bake_type"])
    curve_record = record.get("curve")
    curve = None
    if curve_record is not None:
        curve = resolve_curve_reference(curve_record, curves)
    return RootMotionData(bake_type=bake_type, curve=curve, root_bone=record.get("root_bone"))
