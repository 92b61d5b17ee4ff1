#!/usr/bin/env python3
"""
Optical Measurement Demo Script

Run the measurement pipeline on a local image and print the result.

Usage:
    python demo.py <image_path> [options]

Examples:
    python demo.py photo.jpg
    python demo.py photo.jpg --type monocular_pd --strategy heuristic
    python demo.py photo.jpg --object-type credit_card --real-size-mm 85.6
    python demo.py photo.jpg --object-type credit_card --real-size-mm 85.6 --pixel-width 324
    python demo.py photo.jpg --output-dir debug --json
"""

import argparse
import json
import logging
import os
import sys
from datetime import datetime
from typing import Optional

import cv2

from optical_engine import CalibrationReference, MeasurementResult, OpticalEngineError, OpticalMeasurementEngine
from optical_engine.config import LANDMARK_STRATEGY
from optical_engine.dispatcher import MeasurementType


def create_debug_dir(base_dir: str = "debug") -> str:
    """Create timestamped debug directory."""
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    debug_dir = os.path.join(base_dir, timestamp)
    os.makedirs(debug_dir, exist_ok=True)
    return debug_dir


def print_header(title: str) -> None:
    line = "=" * 70
    print(f"\n{line}")
    print(f"  {title}")
    print(line)


def print_section(title: str) -> None:
    print(f"\n{'-' * 40}")
    print(f"  {title}")
    print(f"{'-' * 40}")


def print_result(result: MeasurementResult) -> None:
    """Human-readable measurement report."""
    print_section("RESULT")
    print(f"  PD: {result.pupillary_distance:.2f} mm")
    print(f"    Monocular PD: R {result.monocular_pd_right:.2f} mm / L {result.monocular_pd_left:.2f} mm")
    print(f"    Optical center R: ({result.optical_center_right[0]:.1f}, {result.optical_center_right[1]:.1f}) mm")
    print(f"    Optical center L: ({result.optical_center_left[0]:.1f}, {result.optical_center_left[1]:.1f}) mm")
    print(f"    Segment height: R {result.segment_height_right:.1f} mm / L {result.segment_height_left:.1f} mm")
    print(f"    Face: {result.face_width:.1f} x {result.face_height:.1f} mm")
    print(f"    Bridge: {result.bridge_width:.1f} mm (nose {result.nose_bridge_width:.1f} mm)")
    print(f"    Temple: {result.temple_length:.0f} mm")
    print(f"    Tilt / wrap: {result.pantoscopic_tilt:.1f}° / {result.wrap_angle:.1f}°")
    print(f"    Vertex: {result.vertex_distance:.0f} mm")

    print_section("QUALITY")
    print(f"  Quality: {result.measurement_quality:.1%}")
    print(f"    Detection confidence: {result.face_detection_confidence:.1%} ({result.landmark_source})")
    print(f"    Lighting: {result.lighting_condition}")
    print(f"    Calibration: {result.calibration_method} ({result.pixel_to_mm_ratio:.4f} mm/px)")
    if result.defaulted_fields:
        print(f"    Defaults used: {', '.join(result.defaulted_fields)}")
    if result.needs_review:
        print("    Needs review: yes")
    for warning in result.warnings:
        print(f"    ⚠️ {warning}")


def build_hint(args: argparse.Namespace) -> Optional[CalibrationReference]:
    if not args.object_type and args.real_size_mm is None:
        return None
    return CalibrationReference(
        object_type=(args.object_type or "").lower(),
        real_size_mm=args.real_size_mm or 0.0,
        pixel_width=args.pixel_width,
    )


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Run optical measurements on an image",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument("image_path", help="Path to input image")
    parser.add_argument("--type", dest="measurement_type", default=None,
                        choices=[t.value for t in MeasurementType],
                        help="Measurement type (default: default)")
    parser.add_argument("--object-type", default=None,
                        help="Reference object in frame: credit_card, id_card, coin, ruler")
    parser.add_argument("--real-size-mm", type=float, default=None,
                        help="Real width of the reference object in mm")
    parser.add_argument("--pixel-width", type=float, default=None,
                        help="Measured reference width in pixels (skips detection)")
    parser.add_argument("--strategy", default=LANDMARK_STRATEGY,
                        choices=["mediapipe", "heuristic"],
                        help="Landmark detection strategy")
    parser.add_argument("-o", "--output-dir", default=None,
                        help="Write an annotated image under this directory")
    parser.add_argument("--json", action="store_true",
                        help="Print the result as JSON")
    parser.add_argument("-v", "--verbose", action="store_true")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if not os.path.exists(args.image_path):
        print(f"Error: Image not found: {args.image_path}", file=sys.stderr)
        return 1

    try:
        hint = build_hint(args)
        with OpticalMeasurementEngine(strategy=args.strategy) as engine:
            image = cv2.imread(args.image_path)
            if image is None:
                print(f"Error: Could not load image: {args.image_path}", file=sys.stderr)
                return 1

            result = engine.measure(image, hint, args.measurement_type)

            if args.output_dir:
                debug_dir = create_debug_dir(args.output_dir)
                viz_path = os.path.join(debug_dir, "result_visualization.jpg")
                cv2.imwrite(viz_path, engine.visualize(image, result))
            else:
                viz_path = None
    except OpticalEngineError as e:
        if args.json:
            print(json.dumps({"success": False, "error": e.to_dict()}, indent=2))
        else:
            print(f"Error ({e.kind}): {e.message}", file=sys.stderr)
        return 2

    if args.json:
        print(json.dumps({"success": True, "measurement": result.to_dict()}, indent=2))
    else:
        h, w = image.shape[:2]
        print_header("OPTICAL MEASUREMENT DEMO")
        print(f"  Input: {args.image_path} ({w}x{h})")
        print(f"  Type: {result.measurement_type}")
        print_result(result)
        if viz_path:
            print(f"\n    → Visualization: {viz_path}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
