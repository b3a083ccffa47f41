"""
Web Interface for Design-to-Page Visual Comparison
"""

import json
import logging
import os
import shutil
import sys
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from flask import Flask, jsonify, request, send_file

from comparator.report_builder import DEFAULT_TOLERANCE, ReportBuilder
from core.config import load_settings
from core.errors import (AcquisitionError, ComparisonCancelled, ComparisonError, DecodeError,
                         DimensionMismatch, PolicyError)
from core.policy import ComparisonPolicy
from core.worker import ComparisonWorker
from utils.file_utils import (REPORT_HTML_FILENAME, REPORT_JSON_FILENAME, is_image_file, new_run_directory,
                              prune_run_directories, resolve_artifact)
from visual.compare_images import ImageComparator
from visual.download_image import download_image
from visual.generate_screenshots import ScreenshotGenerator

logging.basicConfig(level=logging.INFO, format='%(asctime)s %(levelname)s %(name)s: %(message)s')
logger = logging.getLogger(__name__)

settings = load_settings()

app = Flask(__name__)
app.config['ARTIFACTS_DIR'] = settings.artifacts_dir
app.config['COMPARISON_TIMEOUT'] = settings.comparison_timeout
app.config['DEFAULT_POLICY'] = settings.default_policy
app.config['ARTIFACTS_TTL'] = settings.artifacts_ttl
app.config['CORS_ORIGINS'] = settings.cors_origins

worker = ComparisonWorker(max_workers=settings.comparison_workers)
screenshot_generator = ScreenshotGenerator(settings.screenshot)


def acquire_reference_from_url(url: str, output_path: Path) -> Path:
    """Download the reference design image."""
    return download_image(url, output_path, settings.download)


def acquire_candidate(page_url: str, output_path: Path) -> Path:
    """Screenshot the live page under test."""
    return screenshot_generator.capture_screenshot(page_url, output_path)


def error_status(error: ComparisonError) -> int:
    if isinstance(error, (DecodeError, DimensionMismatch)):
        return 422
    if isinstance(error, (AcquisitionError, PolicyError)):
        return 400
    if isinstance(error, ComparisonCancelled):
        return 504
    return 500


def error_response(error: ComparisonError):
    status = error_status(error)
    if status >= 500:
        logger.error("Comparison failed: %s", error)
    else:
        logger.warning("Comparison rejected: %s", error)
    payload = error.to_dict()
    payload['userCorrectable'] = error.user_correctable
    return jsonify(payload), status


def parse_policy(options) -> ComparisonPolicy:
    if options in (None, ''):
        return app.config['DEFAULT_POLICY']
    if isinstance(options, str):
        try:
            options = json.loads(options)
        except json.JSONDecodeError as e:
            raise PolicyError(f"options is not valid JSON: {e}") from e
    if not isinstance(options, dict):
        raise PolicyError('options must be a JSON object')
    return ComparisonPolicy.from_mapping(options, base=app.config['DEFAULT_POLICY'])


def parse_tolerance(value) -> float:
    if value in (None, ''):
        return DEFAULT_TOLERANCE
    try:
        tolerance = float(value)
    except (TypeError, ValueError) as e:
        raise PolicyError(f"tolerance must be a number, got {value!r}") from e
    if not 0.0 <= tolerance <= 100.0:
        raise PolicyError(f"tolerance must be within [0, 100], got {tolerance}")
    return tolerance


def start_run():
    """Create the directory for a new run, pruning stale runs first."""
    prune_run_directories(app.config['ARTIFACTS_DIR'], app.config['ARTIFACTS_TTL'])
    return new_run_directory(app.config['ARTIFACTS_DIR'])


def run_comparison(run_id: str, run_dir: Path, reference_path: Path, candidate_path: Path,
                   policy: ComparisonPolicy, tolerance: float) -> dict:
    """Compare on the worker pool, write artifacts and reports, and build the response body."""
    job = worker.submit(reference_path, candidate_path, policy)
    result = job.result(timeout=app.config['COMPARISON_TIMEOUT'])

    comparator = ImageComparator(policy)
    result, report = comparator.compare_files(
        reference_path, candidate_path, run_dir,
        url_prefix=f'/artifacts/{run_id}',
        result=result,
    )

    builder = ReportBuilder()
    data = builder.collect_metrics(report, result, tolerance)
    builder.generate_json_report(run_dir / REPORT_JSON_FILENAME)
    builder.generate_html_report(run_dir / REPORT_HTML_FILENAME)

    data['runId'] = run_id
    data['policy'] = policy.to_dict()
    data['reportUrl'] = f'/artifacts/{run_id}/{REPORT_HTML_FILENAME}'
    logger.info("Run %s: match score %.2f%% (%s)", run_id, report.match_score, data['verdict']['status'])
    return data


@app.after_request
def add_cors_headers(response):
    """The comparison UI is served from a different origin than this API."""
    origins = app.config['CORS_ORIGINS']
    if origins:
        response.headers['Access-Control-Allow-Origin'] = origins
        response.headers['Access-Control-Allow-Methods'] = 'GET, POST, OPTIONS'
        response.headers['Access-Control-Allow-Headers'] = 'Content-Type'
    return response


@app.route('/health')
def health():
    return jsonify({'status': 'OK', 'message': 'Visual comparison server is running'})


@app.route('/compare', methods=['POST'])
def compare():
    """Download the reference image, screenshot the page and compare them."""
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        payload = {}
    reference_url = payload.get('referenceImageUrl') or payload.get('figmaImageUrl')
    page_url = payload.get('pageUrl')
    if not isinstance(reference_url, str) or not isinstance(page_url, str) or not reference_url or not page_url:
        return jsonify({
            'error': 'Missing required parameters',
            'message': 'Both referenceImageUrl and pageUrl are required',
        }), 400

    run_id, run_dir = start_run()
    try:
        policy = parse_policy(payload.get('options'))
        tolerance = parse_tolerance(payload.get('tolerance'))
        logger.info("Run %s: comparing %s against %s", run_id, reference_url, page_url)
        reference_path = acquire_reference_from_url(reference_url, run_dir / 'reference_source')
        candidate_path = acquire_candidate(page_url, run_dir / 'candidate_source.png')
        return jsonify(run_comparison(run_id, run_dir, reference_path, candidate_path, policy, tolerance))
    except ComparisonError as e:
        shutil.rmtree(run_dir, ignore_errors=True)
        return error_response(e)
    except Exception as e:
        logger.exception("Run %s failed unexpectedly", run_id)
        shutil.rmtree(run_dir, ignore_errors=True)
        return jsonify({'error': 'Comparison failed', 'message': str(e)}), 500


@app.route('/compare-file', methods=['POST'])
def compare_file():
    """Compare an uploaded reference image with an uploaded candidate or a page screenshot."""
    reference_file = request.files.get('referenceImage') or request.files.get('figmaImage')
    candidate_file = request.files.get('candidateImage')
    page_url = request.form.get('pageUrl')

    if reference_file is None or not reference_file.filename or (candidate_file is None and not page_url):
        return jsonify({
            'error': 'Missing required parameters',
            'message': 'A referenceImage file and either a candidateImage file or a pageUrl are required',
        }), 400
    for upload in (reference_file, candidate_file):
        if upload is None:
            continue
        if not (is_image_file(upload.filename) or (upload.mimetype or '').startswith('image/')):
            return jsonify({'error': 'Only image files are allowed', 'message': upload.filename}), 400

    run_id, run_dir = start_run()
    try:
        policy = parse_policy(request.form.get('options'))
        tolerance = parse_tolerance(request.form.get('tolerance'))

        reference_path = run_dir / 'reference_upload'
        reference_file.save(reference_path)
        candidate_path = run_dir / 'candidate_source.png'
        if candidate_file is not None:
            candidate_file.save(candidate_path)
        else:
            candidate_path = acquire_candidate(page_url, candidate_path)
        return jsonify(run_comparison(run_id, run_dir, reference_path, candidate_path, policy, tolerance))
    except ComparisonError as e:
        shutil.rmtree(run_dir, ignore_errors=True)
        return error_response(e)
    except Exception as e:
        logger.exception("Run %s failed unexpectedly", run_id)
        shutil.rmtree(run_dir, ignore_errors=True)
        return jsonify({'error': 'Comparison failed', 'message': str(e)}), 500


@app.route('/artifacts/<run_id>/<path:filename>')
def artifact(run_id, filename):
    """Serve an image or report produced by a comparison run."""
    path = resolve_artifact(app.config['ARTIFACTS_DIR'], run_id, filename)
    if path is None:
        return jsonify({'error': 'Artifact not found'}), 404
    return send_file(path)


if __name__ == '__main__':
    port = int(os.environ.get("PORT", settings.port))
    app.run(host="0.0.0.0", port=port, threaded=True)
