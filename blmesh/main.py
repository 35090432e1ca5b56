#!/usr/bin/env python3
"""
blmesh command line

Entry point for the boundary-layer passes:
- subdivide: split boundary-layer prisms into N stacked prisms and write the result
- classify: find sharp boundary-layer edges and color the prisms beside them
- info: print mesh diagnostics
"""

import argparse
import json
import logging
import sys
import traceback
from typing import List, Optional

from blmesh import __version__
from blmesh.config import BoundaryLayerConfig, load_config
from blmesh.core.boundary_subdivider import EdgeSubdivisionEngine
from blmesh.core.display import ElementColor, ElementColorCodes, NullRenderer
from blmesh.core.errors import BoundaryLayerError
from blmesh.core.mesh_analysis import analyze_mesh
from blmesh.core.mesh_io import load_mesh_file, write_prism_mesh
from blmesh.core.prism_mesh import PrismMesh
from blmesh.core.sharp_edge_classifier import BoundaryEdgeClassifier

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(level: str = "INFO") -> None:
    """Configure the root logger and silence noisy third-party loggers."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )
    logging.getLogger('trimesh').setLevel(logging.WARNING)
    logging.getLogger('meshio').setLevel(logging.WARNING)
    logging.getLogger('pyvista').setLevel(logging.WARNING)
    logging.getLogger('vtkmodules').setLevel(logging.WARNING)


def exception_hook(exc_type, exc_value, exc_tb):
    """Global exception handler to log uncaught exceptions."""
    logger.error("Uncaught exception:", exc_info=(exc_type, exc_value, exc_tb))
    traceback.print_exception(exc_type, exc_value, exc_tb)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='blmesh',
        description="Boundary-layer prism subdivision and sharp-edge classification",
    )
    parser.add_argument('--version', action='version', version=f"%(prog)s {__version__}")

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument('input', help="Volume mesh file (.msh, .vtu, ...)")
    common.add_argument('--config', help="JSON configuration file")
    common.add_argument(
        '--layer', action='append', default=[], metavar='NAME=N',
        help="Set the boundary-layer count of a facegroup (repeatable)",
    )
    common.add_argument('--log-level', choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'])

    subparsers = parser.add_subparsers(dest='command', required=True)

    subdivide = subparsers.add_parser('subdivide', parents=[common], help="Subdivide boundary-layer prisms")
    subdivide.add_argument('-n', '--divisions', type=int, help="Number of sub-prisms per prism")
    subdivide.add_argument('-o', '--output', help="Output mesh file")

    classify = subparsers.add_parser('classify', parents=[common], help="Classify sharp boundary-layer edges")
    classify.add_argument('-o', '--output', help="Write the mesh with a 'bl_color' cell array")
    classify.add_argument('--registry', help="Write the sharp-edge registry as JSON")
    classify.add_argument('--show', action='store_true', help="Show the colored mesh")

    subparsers.add_parser('info', parents=[common], help="Print mesh diagnostics")

    return parser


def _load_mesh(args, config: BoundaryLayerConfig) -> PrismMesh:
    result = load_mesh_file(args.input, config.facegroup_tag, config.boundary_layers)
    return result.require_mesh()


def run_subdivide(args, config: BoundaryLayerConfig) -> int:
    mesh = _load_mesh(args, config)
    engine = EdgeSubdivisionEngine(mesh, config.num_divisions)

    before = analyze_mesh(mesh, config.coincident_tolerance)
    result = engine.subdivide()
    after = analyze_mesh(mesh, config.coincident_tolerance)

    logger.info(
        f"Prisms: {before.prism_count} -> {after.prism_count}, "
        f"volume: {before.prism_volume:.6g} -> {after.prism_volume:.6g}"
    )
    if after.coincident_node_pairs > before.coincident_node_pairs:
        logger.warning(
            f"Subdivision added {after.coincident_node_pairs - before.coincident_node_pairs} "
            "coincident node pairs"
        )
    if result.skipped_elements:
        logger.warning(f"{result.skipped_elements} elements on boundary-layer faces were not subdivided")

    output_path = args.output or config.output_path
    write_prism_mesh(mesh, output_path, config.facegroup_tag)
    return 0


def run_classify(args, config: BoundaryLayerConfig) -> int:
    mesh = _load_mesh(args, config)
    colors = ElementColorCodes()

    viewer = None
    if args.show:
        from blmesh.viewer import PYVISTA_AVAILABLE, PrismMeshViewer
        if PYVISTA_AVAILABLE:
            viewer = PrismMeshViewer(mesh, colors)
        else:
            logger.warning("PyVista not installed, --show ignored")

    classifier = BoundaryEdgeClassifier(
        mesh,
        color_tagger=viewer if viewer is not None else colors,
        renderer=viewer if viewer is not None else NullRenderer(),
        cos_threshold=config.sharp_edge_cos_threshold,
    )
    registry = classifier.classify()

    for entry in registry:
        logger.info(
            f"Facegroup '{entry.facegroup_name}': {len(entry.ring)} sharp edges "
            f"({len(entry.ring.unique_edge_keys())} distinct)"
        )
    logger.info(
        f"Colored {len(colors.keys_with_color(ElementColor.RED))} red and "
        f"{len(colors.keys_with_color(ElementColor.GREEN))} green elements"
    )

    if args.output:
        write_prism_mesh(mesh, args.output, config.facegroup_tag, color_codes=colors)
    if args.registry:
        with open(args.registry, 'w', encoding='utf-8') as fh:
            json.dump(registry.to_dict(), fh, indent=2)
        logger.info(f"Wrote registry to {args.registry}")
    if viewer is not None:
        viewer.show()
    return 0


def run_info(args, config: BoundaryLayerConfig) -> int:
    mesh = _load_mesh(args, config)
    diagnostics = analyze_mesh(mesh, config.coincident_tolerance)
    print(diagnostics.format())
    return 0


COMMANDS = {
    'subdivide': run_subdivide,
    'classify': run_classify,
    'info': run_info,
}


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(args.log_level or "INFO")
    sys.excepthook = exception_hook

    try:
        config = load_config(args.config)
        config.with_layers(args.layer)
        if getattr(args, 'divisions', None) is not None:
            config.num_divisions = args.divisions
            config.revalidate()
        if args.log_level is None:
            logging.getLogger().setLevel(config.log_level.upper())

        return COMMANDS[args.command](args, config)

    except BoundaryLayerError as e:
        logger.error(str(e))
        return 2


if __name__ == "__main__":
    sys.exit(main())
