"""
Error taxonomy for root motion baking.

Per-node lookup failures (missing graph, clip, data, bones) are treated as
soft by the bake service: the node is skipped and retried on the next pass.
CurveLengthMismatch is an internal invariant violation and aborts the pass.
"""


class RootMotionError(Exception):
    """Base class for all root motion errors."""


class MissingGraph(RootMotionError):
    """The animation graph referenced by an owner cannot be resolved."""


class MissingClip(RootMotionError):
    """A graph node has no clip, or its clip handle does not resolve."""


class MissingRootMotionData(RootMotionError):
    """A graph node carries no root motion data."""


class ZeroMassNodes(RootMotionError):
    """No mass-bearing descendants were found below a skeleton root."""

    def __init__(self, root):
        super().__init__(f"No mass-bearing nodes below skeleton root {root!r}")
        self.root = root


class MissingRootBone(RootMotionError):
    """The designated root bone was not found below the skeleton root."""

    def __init__(self, root, bone_name: str):
        super().__init__(f"Root bone '{bone_name}' not found below skeleton root {root!r}")
        self.root = root
        self.bone_name = bone_name


class UnimplementedBakeType(RootMotionError):
    """The requested bake type cannot be produced with the given inputs."""

    def __init__(self, bake_type, reason: str = ""):
        message = f"Cannot bake root motion of type {bake_type}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.bake_type = bake_type


class AssetResolutionFailure(RootMotionError):
    """A serialized curve reference resolved by neither path nor id."""

    def __init__(self, path=None, asset_id=None):
        parts = []
        if path is not None:
            parts.append(f"path '{path}'")
        if asset_id is not None:
            parts.append(f"id {asset_id}")
        target = " or ".join(parts) if parts else "empty reference"
        super().__init__(f"Could not resolve root motion curve from {target}")
        self.path = path
        self.asset_id = asset_id


class InvalidCurveError(RootMotionError, ValueError):
    """Curve data violates the timestamp/position invariants."""


class CurveLengthMismatch(RootMotionError, AssertionError):
    """Sampled timestamps and positions differ in length (fatal)."""

    def __init__(self, num_timestamps: int, num_positions: int):
        super().__init__(
            f"Sampled {num_timestamps} timestamps but {num_positions} positions"
        )
        self.num_timestamps = num_timestamps
        self.num_positions = num_positions


class HierarchyCycleError(RootMotionError, ValueError):
    """Re-parenting would introduce a cycle in the skeleton hierarchy."""


class TransformStoreBusy(RootMotionError, RuntimeError):
    """Exclusive access to the transform store is already held."""


class SceneFormatError(RootMotionError, ValueError):
    """A scene description file is malformed."""


# Errors that skip a single node instead of aborting the pass.
SOFT_BAKE_ERRORS = (
    MissingGraph,
    MissingClip,
    MissingRootMotionData,
    ZeroMassNodes,
    MissingRootBone,
    UnimplementedBakeType,
)
