"""
Report Builder Module
Tolerance verdicts, quality analysis and JSON/HTML exports using Jinja2 templates.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from jinja2 import Environment, FileSystemLoader, select_autoescape

from core.report import ComparisonReport
from core.result import ComparisonResult

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).parent / 'templates'
DEFAULT_TOLERANCE = 5.0

# Upper mismatch bounds (inclusive) for each quality bucket
QUALITY_THRESHOLDS = {
    'excellent': 1.0,
    'good': 5.0,
    'acceptable': 10.0,
}


def evaluate_tolerance(report: ComparisonReport, tolerance: float = DEFAULT_TOLERANCE) -> Dict[str, Any]:
    """Pass/fail verdict: the comparison passes when the mismatch is within `tolerance` percent."""
    passed = report.mismatch_percentage <= tolerance
    if passed:
        message = f"Images match within tolerance ({tolerance}%)"
    else:
        message = (f"Images exceed tolerance ({tolerance}%). "
                   f"Mismatch: {report.mismatch_percentage:.2f}%")
    return {
        'passed': passed,
        'tolerance': tolerance,
        'status': 'PASS' if passed else 'FAIL',
        'message': message,
    }


def analyse_quality(report: ComparisonReport) -> Dict[str, Any]:
    """Quality buckets and recommendations for a report."""
    mismatch = report.mismatch_percentage
    quality = {
        'excellent': mismatch <= QUALITY_THRESHOLDS['excellent'],
        'good': mismatch <= QUALITY_THRESHOLDS['good'],
        'acceptable': mismatch <= QUALITY_THRESHOLDS['acceptable'],
        'poor': mismatch > QUALITY_THRESHOLDS['acceptable'],
    }
    recommendations: List[str] = []
    if quality['excellent']:
        recommendations.append('Excellent match! The implementation is very close to the design.')
    elif quality['good']:
        recommendations.append('Good match. Minor adjustments may be needed for pixel-perfect implementation.')
    elif quality['acceptable']:
        recommendations.append('Acceptable match. Consider reviewing layout, spacing, and styling.')
    else:
        recommendations.append('Significant differences detected. Review the design implementation thoroughly.')

    if not report.is_same_dimensions:
        recommendations.append('Images have different dimensions. Ensure consistent viewport sizes.')
    return {'quality': quality, 'recommendations': recommendations}


class ReportBuilder:
    def __init__(self, templates_dir: Path = TEMPLATES_DIR):
        self.env = Environment(
            loader=FileSystemLoader(str(templates_dir)),
            autoescape=select_autoescape(['html']),
        )
        self.template = self.env.get_template('report.html')
        self.data: Dict[str, Any] = {}

    def collect_metrics(self, report: ComparisonReport,
                        result: Optional[ComparisonResult] = None,
                        tolerance: float = DEFAULT_TOLERANCE) -> Dict[str, Any]:
        """Collect and organize comparison metrics."""
        data = report.to_dict()
        data['verdict'] = evaluate_tolerance(report, tolerance)
        data.update(analyse_quality(report))
        if result is not None:
            data['details'] = result.to_dict()
        self.data = data
        return data

    def generate_html_report(self, output_path: Path) -> Path:
        """Render the collected metrics as a standalone HTML page."""
        if not self.data:
            raise ValueError('collect_metrics must be called before generating a report')
        output_path = Path(output_path)
        output_path.write_text(self.template.render(report=self.data), encoding='utf-8')
        logger.info("HTML report written to %s", output_path)
        return output_path

    def generate_json_report(self, output_path: Path) -> Path:
        """Write the collected metrics as JSON."""
        if not self.data:
            raise ValueError('collect_metrics must be called before generating a report')
        output_path = Path(output_path)
        with open(output_path, 'w', encoding='utf-8') as f:
            json.dump(self.data, f, indent=2)
        logger.info("JSON report written to %s", output_path)
        return output_path
