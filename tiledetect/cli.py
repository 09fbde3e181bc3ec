"""
Command-line interface for tiled detection.

Usage:
    python -m tiledetect slice <image_path> [--slice-size 400] [--overlap-ratio 0.2] [-o json|visual]
    python -m tiledetect merge <detections.json> [--nms-threshold 0.5] [--max-detections N]
    python -m tiledetect detect <image_path> --model <model.onnx> [-o json|visual]
    python -m tiledetect --help
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

import cv2

from tiledetect.config import DetectionConfig
from tiledetect.errors import ConfigurationError, PipelineError
from tiledetect.imaging import NumpyEncoder

logger = logging.getLogger(__name__)


def _add_slicing_arguments(parser: argparse.ArgumentParser):
    parser.add_argument(
        "--slice-size",
        type=int,
        default=None,
        help="Tile edge length in pixels (default: 400)",
    )
    parser.add_argument(
        "--overlap-ratio",
        type=float,
        default=None,
        help="Fraction of tile overlap, 0.0 to < 1.0 (default: 0.2)",
    )


def _add_output_arguments(parser: argparse.ArgumentParser):
    parser.add_argument(
        "--output",
        "-o",
        choices=["json", "visual"],
        default="json",
        help="Output format (default: json)",
    )
    parser.add_argument(
        "--output-path",
        type=str,
        help="Output file path (for visual mode)",
    )


def setup_argparse() -> argparse.ArgumentParser:
    """Set up argument parser."""
    parser = argparse.ArgumentParser(
        prog="tiledetect",
        description="Tiled object detection for large images",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose output",
    )
    parser.add_argument(
        "--version",
        action="version",
        version="%(prog)s 1.0.0",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # slice command
    slice_parser = subparsers.add_parser(
        "slice",
        help="Show the tile grid for an image",
    )
    slice_parser.add_argument(
        "image_path",
        type=str,
        help="Path to the input image",
    )
    _add_slicing_arguments(slice_parser)
    _add_output_arguments(slice_parser)

    # merge command
    merge_parser = subparsers.add_parser(
        "merge",
        help="Run per-label NMS over a JSON list of detections",
    )
    merge_parser.add_argument(
        "detections_path",
        type=str,
        help="Path to a JSON file with a list of detections (or {\"detections\": [...]})",
    )
    merge_parser.add_argument(
        "--nms-threshold",
        type=float,
        default=0.5,
        help="IoU above which same-label detections are duplicates (default: 0.5)",
    )
    merge_parser.add_argument(
        "--max-detections",
        type=int,
        default=None,
        help="Keep at most this many detections after merge",
    )

    # detect command
    detect_parser = subparsers.add_parser(
        "detect",
        help="Run tiled detection with an ONNX YOLO model",
    )
    detect_parser.add_argument(
        "image_path",
        type=str,
        help="Path to the input image",
    )
    detect_parser.add_argument(
        "--model",
        type=str,
        required=True,
        help="Path to the .onnx model",
    )
    detect_parser.add_argument(
        "--config",
        type=str,
        help="YAML configuration file",
    )
    _add_slicing_arguments(detect_parser)
    detect_parser.add_argument(
        "--nms-threshold",
        type=float,
        default=None,
        help="IoU above which same-label detections are duplicates (default: 0.5)",
    )
    detect_parser.add_argument(
        "--min-score",
        type=float,
        default=None,
        help="Detector confidence floor (default: 0.5)",
    )
    detect_parser.add_argument(
        "--max-boxes-per-tile",
        type=int,
        default=None,
        help="Cap on raw detections per tile (default: 2000)",
    )
    detect_parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Tiles processed concurrently (default: 1)",
    )
    _add_output_arguments(detect_parser)

    return parser


def _build_config(args) -> DetectionConfig:
    """Config file (if any) overridden by explicit flags."""
    config = DetectionConfig.from_yaml(args.config) if getattr(args, "config", None) else DetectionConfig()
    return config.with_overrides(
        slice_size=getattr(args, "slice_size", None),
        overlap_ratio=getattr(args, "overlap_ratio", None),
        nms_threshold=getattr(args, "nms_threshold", None),
        min_score=getattr(args, "min_score", None),
        max_boxes_per_tile=getattr(args, "max_boxes_per_tile", None),
        max_workers=getattr(args, "workers", None),
    )


def cmd_slice(args) -> int:
    """Handle slice command."""
    from tiledetect.imaging import load_image
    from tiledetect.tiling.slicer import ImageSlicer
    from tiledetect.tiling.visualization import visualize_tile_grid

    image_path = Path(args.image_path)
    image = load_image(image_path)
    h, w = image.shape[:2]

    slicer = ImageSlicer(config=_build_config(args))
    boundaries = slicer.calculate_grid_boundaries(w, h)

    if args.output == "json":
        output = {
            "image_dimensions": {"width": w, "height": h},
            "slice_size": slicer.slice_size,
            "overlap": slicer.overlap,
            "step": slicer.step,
            "tile_count": len(boundaries),
            "tiles": [
                {
                    "id": f"tile_{i}",
                    "offset_x": x,
                    "offset_y": y,
                    "slice_width": sw,
                    "slice_height": sh,
                }
                for i, (x, y, sw, sh) in enumerate(boundaries)
            ],
        }
        print(json.dumps(output, indent=2, cls=NumpyEncoder))

    elif args.output == "visual":
        output_path = args.output_path or str(image_path.stem) + "_tiles.png"
        cv2.imwrite(output_path, visualize_tile_grid(image, boundaries))
        print(f"Tile grid saved to: {output_path}")

    return 0


def cmd_merge(args) -> int:
    """Handle merge command."""
    from tiledetect.tiling.merging import merge_detections
    from tiledetect.tiling.models import Detection

    path = Path(args.detections_path)
    if not path.exists():
        print(f"Error: Detections file not found: {path}", file=sys.stderr)
        return 1

    try:
        with open(path, "r") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        print(f"Error: Invalid JSON in {path}: {e}", file=sys.stderr)
        return 1

    if isinstance(data, dict):
        data = data.get("detections", [])

    try:
        detections = [Detection.from_dict(d) for d in data]
    except (KeyError, TypeError, ValueError) as e:
        print(f"Error: Invalid detection record: {e}", file=sys.stderr)
        return 1

    if not (0.0 <= args.nms_threshold <= 1.0):
        print(f"Error: nms_threshold must be between 0.0 and 1.0, got {args.nms_threshold}", file=sys.stderr)
        return 1

    merged = merge_detections(detections, args.nms_threshold, args.max_detections)
    logger.info(f"Merged {len(detections)} -> {len(merged)} detections")

    print(json.dumps({
        "input_count": len(detections),
        "detection_count": len(merged),
        "detections": [d.to_dict() for d in merged],
    }, indent=2, cls=NumpyEncoder))
    return 0


def cmd_detect(args) -> int:
    """Handle detect command."""
    from tiledetect.detectors.onnx_backend import load_yolo_detector
    from tiledetect.imaging import load_image
    from tiledetect.tiling.pipeline import TiledDetector
    from tiledetect.tiling.visualization import draw_detections

    image_path = Path(args.image_path)
    image = load_image(image_path)
    config = _build_config(args)

    if not Path(args.model).exists():
        print(f"Error: Model not found: {args.model}", file=sys.stderr)
        return 1

    detector = load_yolo_detector(args.model)
    result = TiledDetector(detector, config).detect(image)

    if args.output == "json":
        print(json.dumps(result.to_dict(), indent=2, cls=NumpyEncoder))

    elif args.output == "visual":
        output_path = args.output_path or str(image_path.stem) + "_detections.png"
        cv2.imwrite(output_path, draw_detections(image, result.detections))
        print(f"Detections saved to: {output_path}")

    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = setup_argparse()
    args = parser.parse_args(argv)

    # Configure logging
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )

    if args.command is None:
        parser.print_help()
        return 0

    handlers = {
        "slice": cmd_slice,
        "merge": cmd_merge,
        "detect": cmd_detect,
    }

    try:
        return handlers[args.command](args)
    except (ConfigurationError, PipelineError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
