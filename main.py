#!/usr/bin/env python3
"""
Design-to-Page Visual Comparison Tool
Command line entry point: compares a reference image with a candidate image.
"""

import argparse
import json
import logging
import sys
from pathlib import Path

from comparator.report_builder import DEFAULT_TOLERANCE, ReportBuilder
from core.errors import ComparisonError
from core.policy import ComparisonPolicy, DiffMode
from utils.file_utils import REPORT_HTML_FILENAME, REPORT_JSON_FILENAME
from visual.compare_images import ImageComparator

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Compare a reference design image with a rendered page screenshot.')
    parser.add_argument('reference', help='Path to the reference (design) image.')
    parser.add_argument('candidate', help='Path to the candidate (rendered page) image.')
    parser.add_argument('-o', '--output-dir', default='comparison_output',
                        help='Directory receiving reference.png, candidate.png, diff.png and reports.')
    parser.add_argument('--ignore-colors', action='store_true', help='Compare brightness only.')
    parser.add_argument('--ignore-antialiasing', action='store_true', help='Ignore edge-smoothing differences.')
    parser.add_argument('--no-scale', action='store_true',
                        help='Do not resample images of different sizes (fails unless --pad is given).')
    parser.add_argument('--pad', action='store_true',
                        help='With --no-scale, compare the overlap and count the rest as divergent.')
    parser.add_argument('--diff-mode', choices=[m.value for m in DiffMode], default=DiffMode.MOVEMENT.value)
    parser.add_argument('--transparency', type=float, default=0.3, help='Highlight opacity in the diff image.')
    parser.add_argument('--pixel-tolerance', type=int, default=16, help='Per-channel tolerance (0-255).')
    parser.add_argument('-t', '--tolerance', type=float, default=DEFAULT_TOLERANCE,
                        help='Maximum mismatch percentage for a PASS verdict.')
    parser.add_argument('--html', action='store_true', help='Also write an HTML report.')
    parser.add_argument('-v', '--verbose', action='store_true')
    return parser


def main(argv=None) -> int:
    """Main execution function."""
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING,
                        format='%(levelname)s %(name)s: %(message)s')

    try:
        policy = ComparisonPolicy(
            ignore_antialiasing=args.ignore_antialiasing,
            ignore_colors=args.ignore_colors,
            scale_to_same_size=not args.no_scale,
            pad_on_mismatch=args.pad,
            diff_mode=args.diff_mode,
            error_highlight_transparency=args.transparency,
            tolerance=args.pixel_tolerance,
        )
        output_dir = Path(args.output_dir)
        result, report = ImageComparator(policy).compare_files(args.reference, args.candidate, output_dir)
    except ComparisonError as e:
        print(json.dumps(e.to_dict(), indent=2), file=sys.stderr)
        return 2

    builder = ReportBuilder()
    data = builder.collect_metrics(report, result, args.tolerance)
    builder.generate_json_report(output_dir / REPORT_JSON_FILENAME)
    if args.html:
        builder.generate_html_report(output_dir / REPORT_HTML_FILENAME)

    print(json.dumps(data, indent=2))
    return 0 if data['verdict']['passed'] else 1


if __name__ == "__main__":
    sys.exit(main())
