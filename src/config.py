"""
Bake configuration: sample rates and mass-bearing node rules.
"""

import json
from typing import List, Optional

from core.cog_sampler import DEFAULT_MASS_MARKER_PREFIX

SAMPLE_RATE_CHOICES = (30, 60, 90, 120)
DEFAULT_SAMPLE_RATE = 60


def get_sample_rate_choices() -> List[int]:
    return list(SAMPLE_RATE_CHOICES)


def get_default_sample_rate() -> int:
    return DEFAULT_SAMPLE_RATE


class BakeSettings:
    """
    Settings shared by every bake pass.

    Attributes:
        sample_rate: Samples per second taken from each clip
        mass_marker_prefix: Name prefix marking deformation (mass-bearing) bones
        unnamed_nodes_are_mass_bearing: Whether nodes without a name count
            towards the center of gravity
        root_bone_name: Fallback bone tracked by RootBone bakes when the
            node's root motion data does not name one
    """

    _KEYS = (
        "sample_rate",
        "mass_marker_prefix",
        "unnamed_nodes_are_mass_bearing",
        "root_bone_name",
    )

    def __init__(
        self,
        sample_rate: float = DEFAULT_SAMPLE_RATE,
        mass_marker_prefix: str = DEFAULT_MASS_MARKER_PREFIX,
        unnamed_nodes_are_mass_bearing: bool = True,
        root_bone_name: Optional[str] = None,
    ):
        if sample_rate <= 0:
            raise ValueError(f"sample_rate must be positive, got {sample_rate}")
        self.sample_rate = float(sample_rate)
        self.mass_marker_prefix = mass_marker_prefix
        self.unnamed_nodes_are_mass_bearing = bool(unnamed_nodes_are_mass_bearing)
        self.root_bone_name = root_bone_name

    @property
    def step_size(self) -> float:
        return 1.0 / self.sample_rate

    @classmethod
    def from_dict(cls, data: dict) -> "BakeSettings":
        unknown = sorted(set(data) - set(cls._KEYS))
        if unknown:
            raise ValueError(f"Unknown bake settings: {unknown}. Available: {list(cls._KEYS)}")
        return cls(**data)

    @classmethod
    def from_json_file(cls, path: str) -> "BakeSettings":
        with open(path, "r", encoding="utf-8") as handle:
            return cls.from_dict(json.load(handle))

    def to_dict(self) -> dict:
        return {key: getattr(self, key) for key in self._KEYS}
