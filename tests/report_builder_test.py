import sys
import os
import json
import pytest
from datetime import datetime, timezone
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))
from comparator.report_builder import ReportBuilder, analyse_quality, evaluate_tolerance
from core.comparison import analyse
from core.raster import RasterImage
from core.report import ImageRefs, build_report, round_percentage
from core.result import ComparisonResult
from core.size_normalizer import DimensionDelta


def make_result(mismatch, same_dimensions=True):
    return ComparisonResult(
        mismatch_percentage=mismatch,
        raw_mismatch_percentage=mismatch,
        is_same_dimensions=same_dimensions,
        dimension_delta=None if same_dimensions else DimensionDelta(10, 20),
        diff_image=RasterImage.solid(2, 2, (0, 0, 0)),
        computed_at=datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc),
    )


def test_match_score_is_complement_of_mismatch():
    report = build_report(make_result(12.345))
    assert report.mismatch_percentage == 12.35
    assert report.match_score == 87.65


def test_rounding_is_half_up_not_truncation():
    assert round_percentage(0.125) == 0.13
    assert round_percentage(2.675) == 2.68
    assert round_percentage(99.994) == 99.99


def test_scores_are_clamped():
    report = build_report(make_result(100.004))
    assert report.mismatch_percentage == 100.0
    assert report.match_score == 0.0


def test_report_timestamp_comes_from_comparison():
    result = make_result(3.0)
    first = build_report(result)
    second = build_report(result)
    assert first.computed_at == second.computed_at == result.computed_at
    assert first == second


def test_report_dict_shape():
    refs = ImageRefs(reference='/a/reference.png', candidate='/a/candidate.png', diff='/a/diff.png')
    data = build_report(make_result(1.0, same_dimensions=False), refs).to_dict()
    assert data['matchScore'] == 99.0
    assert data['mismatchPercentage'] == 1.0
    assert data['imageRefs']['diff'] == '/a/diff.png'
    assert data['dimensionDelta'] == {'width': 10, 'height': 20}
    assert data['computedAt'].startswith('2024-05-01T12:00:00')


def test_tolerance_verdict():
    passing = evaluate_tolerance(build_report(make_result(4.99)), tolerance=5)
    failing = evaluate_tolerance(build_report(make_result(5.01)), tolerance=5)
    assert passing['passed'] and passing['status'] == 'PASS'
    assert not failing['passed'] and failing['status'] == 'FAIL'
    assert '5.01%' in failing['message']


@pytest.mark.parametrize('mismatch,bucket', [
    (0.5, 'excellent'),
    (3.0, 'good'),
    (8.0, 'acceptable'),
    (40.0, 'poor'),
])
def test_quality_buckets(mismatch, bucket):
    analysis = analyse_quality(build_report(make_result(mismatch)))
    assert analysis['quality'][bucket]
    assert len(analysis['recommendations']) == 1


def test_dimension_mismatch_adds_recommendation():
    analysis = analyse_quality(build_report(make_result(0.0, same_dimensions=False)))
    assert any('different dimensions' in r for r in analysis['recommendations'])


def test_json_and_html_reports(tmp_path):
    result = analyse(RasterImage.solid(10, 10, (255, 0, 0)), RasterImage.solid(10, 10, (0, 0, 255)))
    report = build_report(result, ImageRefs(diff='diff.png'))
    builder = ReportBuilder()
    data = builder.collect_metrics(report, result, tolerance=5)
    assert data['verdict']['status'] == 'FAIL'
    assert data['details']['divergentPixels'] == 100

    json_path = builder.generate_json_report(tmp_path / 'report.json')
    html_path = builder.generate_html_report(tmp_path / 'report.html')
    assert json.loads(json_path.read_text(encoding='utf-8'))['matchScore'] == 0.0
    html = html_path.read_text(encoding='utf-8')
    assert '0.00% match' in html
    assert 'diff.png' in html


def test_reports_require_metrics(tmp_path):
    with pytest.raises(ValueError):
        ReportBuilder().generate_json_report(tmp_path / 'report.json')
