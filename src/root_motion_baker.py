"""
Main entry point for the Root Motion Baker.
"""

import argparse
import json
import logging
import os
import sys
from typing import List, Optional

logger = logging.getLogger(__name__)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='[RootMotionBaker] %(levelname)s: %(message)s'
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="root-motion-baker",
        description="Bake root motion curves from animation clips.",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    bake = subparsers.add_parser("bake", help="Bake every pending root motion node in a scene")
    bake.add_argument("scene", help="Scene description (JSON)")
    bake.add_argument("--out", required=True, help="Output directory for the curve library")
    bake.add_argument("--curves", help="Existing curve library used to resolve baked references")
    bake.add_argument("--settings", help="Bake settings (JSON)")
    bake.add_argument("--sample-rate", type=float, help="Override the sample rate")

    inspect = subparsers.add_parser("inspect", help="Summarize a baked curve file")
    inspect.add_argument("curve", help="Curve file (.curve.json)")
    return parser


def run_bake(args) -> int:
    from config import BakeSettings
    from pipeline_io import export_root_motion, load_scene, save_curve_library
    from scene.bake_service import RootMotionBakeService

    settings = BakeSettings.from_json_file(args.settings) if args.settings else BakeSettings()
    if args.sample_rate is not None:
        data = settings.to_dict()
        data["sample_rate"] = args.sample_rate
        settings = BakeSettings.from_dict(data)

    loaded = load_scene(args.scene, curve_library=args.curves)
    service = RootMotionBakeService.for_scene(loaded.scene, loaded.assets, settings=settings)
    for name, root, player, graph in loaded.owners:
        logger.debug("Registering skeleton '%s'", name)
        service.register_owner(root, player, graph)

    report = service.tick()
    if report is None:
        logger.info("Nothing to bake")
    else:
        logger.info("Baked %d nodes, skipped %d", len(report.baked), len(report.skipped))

    save_curve_library(loaded.assets.curves, args.out)
    export_root_motion(loaded.assets, os.path.join(args.out, "root_motion.json"))
    return 0 if report is None or report.all_baked else 2


def run_inspect(args) -> int:
    from core.root_motion import RootMotionCurve

    with open(args.curve, "r", encoding="utf-8") as handle:
        curve = RootMotionCurve.from_dict(json.load(handle))
    total = curve.displacement(0.0, curve.duration)
    print(f"samples:      {len(curve)}")
    print(f"duration:     {curve.duration:.4f}s")
    print(f"interpolation: {curve.interpolation.value}")
    print(f"displacement: ({total[0]:.4f}, {total[1]:.4f}, {total[2]:.4f})")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """
    Run the command line tool.

    Returns:
        Process exit code (2 when some root motion is still unbaked)
    """
    from core.errors import RootMotionError

    args = build_parser().parse_args(argv)
    _configure_logging(args.verbose)

    try:
        if args.command == "bake":
            return run_bake(args)
        return run_inspect(args)
    except (RootMotionError, OSError, ValueError) as e:
        logger.error(f"Error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
