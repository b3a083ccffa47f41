import sys
import os
import io
import json
import pytest
import threading
from concurrent.futures import Future
import numpy as np
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))
from core.errors import InternalError, RenderError
from core.raster import RasterImage
from core.worker import ComparisonJob
from web import app as web_app


def red_with_blue_corner():
    pixels = np.array(RasterImage.solid(100, 100, (255, 0, 0)).pixels)
    pixels[:10, :10, :3] = (0, 0, 255)
    return RasterImage(pixels)


@pytest.fixture
def client(tmp_path, monkeypatch):
    monkeypatch.setitem(web_app.app.config, 'ARTIFACTS_DIR', tmp_path)
    web_app.app.config['TESTING'] = True
    return web_app.app.test_client()


@pytest.fixture
def fake_acquisition(monkeypatch):
    def reference(url, output_path):
        return RasterImage.solid(100, 100, (255, 0, 0)).save(output_path)

    def candidate(page_url, output_path):
        return red_with_blue_corner().save(output_path)

    monkeypatch.setattr(web_app, 'acquire_reference_from_url', reference)
    monkeypatch.setattr(web_app, 'acquire_candidate', candidate)


def test_health(client):
    response = client.get('/health')
    assert response.status_code == 200
    assert response.get_json()['status'] == 'OK'


def test_compare_requires_both_urls(client):
    response = client.post('/compare', json={'pageUrl': 'https://example.com'})
    assert response.status_code == 400
    assert response.get_json()['error'] == 'Missing required parameters'


def test_compare_returns_report_and_serves_artifacts(client, fake_acquisition):
    response = client.post('/compare', json={
        'figmaImageUrl': 'https://example.com/design.png',
        'pageUrl': 'https://example.com',
    })
    assert response.status_code == 200
    data = response.get_json()
    assert data['matchScore'] == 99.0
    assert data['mismatchPercentage'] == 1.0
    assert data['verdict']['status'] == 'PASS'
    assert data['policy']['ignoreAntialiasing'] is True
    diff_url = data['imageRefs']['diff']
    assert diff_url == f"/artifacts/{data['runId']}/diff.png"

    diff = client.get(diff_url)
    assert diff.status_code == 200
    assert RasterImage.from_bytes(diff.data).size == (100, 100)
    assert client.get(data['reportUrl']).status_code == 200


def test_acquisition_failure_is_user_correctable(client, monkeypatch):
    def broken(page_url, output_path):
        raise RenderError('Failed to load page: 404', url=page_url)

    monkeypatch.setattr(web_app, 'acquire_reference_from_url',
                        lambda url, path: RasterImage.solid(2, 2, (0, 0, 0)).save(path))
    monkeypatch.setattr(web_app, 'acquire_candidate', broken)
    response = client.post('/compare', json={
        'referenceImageUrl': 'https://example.com/design.png',
        'pageUrl': 'https://example.com/missing',
    })
    assert response.status_code == 400
    data = response.get_json()
    assert data['error'] == 'RenderError'
    assert data['userCorrectable'] is True


def test_invalid_options_rejected(client, fake_acquisition):
    response = client.post('/compare', json={
        'referenceImageUrl': 'https://example.com/design.png',
        'pageUrl': 'https://example.com',
        'options': '{not json',
    })
    assert response.status_code == 400
    assert response.get_json()['error'] == 'PolicyError'


def upload(image, name):
    return io.BytesIO(image.to_png_bytes()), name


def test_compare_file_with_uploaded_candidate(client):
    response = client.post('/compare-file', data={
        'referenceImage': upload(RasterImage.solid(100, 100, (255, 0, 0)), 'design.png'),
        'candidateImage': upload(red_with_blue_corner(), 'page.png'),
        'options': json.dumps({'diffMode': 'flat'}),
        'tolerance': '0.5',
    }, content_type='multipart/form-data')
    assert response.status_code == 200
    data = response.get_json()
    assert data['mismatchPercentage'] == 1.0
    assert data['verdict']['status'] == 'FAIL'
    assert data['policy']['diffMode'] == 'flat'


def test_compare_file_dimension_mismatch_without_scaling(client):
    response = client.post('/compare-file', data={
        'referenceImage': upload(RasterImage.solid(10, 10, (0, 0, 0)), 'design.png'),
        'candidateImage': upload(RasterImage.solid(20, 10, (0, 0, 0)), 'page.png'),
        'options': json.dumps({'scaleToSameSize': False}),
    }, content_type='multipart/form-data')
    assert response.status_code == 422
    assert response.get_json()['error'] == 'DimensionMismatch'


def test_compare_file_undecodable_upload(client):
    response = client.post('/compare-file', data={
        'referenceImage': (io.BytesIO(b'definitely not a png'), 'design.png'),
        'candidateImage': upload(RasterImage.solid(10, 10, (0, 0, 0)), 'page.png'),
    }, content_type='multipart/form-data')
    assert response.status_code == 422
    assert response.get_json()['error'] == 'DecodeError'


def test_compare_file_rejects_non_image_upload(client):
    response = client.post('/compare-file', data={
        'referenceImage': (io.BytesIO(b'hello'), 'notes.txt'),
        'candidateImage': upload(RasterImage.solid(10, 10, (0, 0, 0)), 'page.png'),
    }, content_type='multipart/form-data')
    assert response.status_code == 400
    assert response.get_json()['error'] == 'Only image files are allowed'


def test_artifact_paths_cannot_escape_run_directory(client, tmp_path):
    (tmp_path / 'secret.txt').write_text('secret')
    run_id = 'a' * 32
    (tmp_path / run_id).mkdir()
    assert client.get(f'/artifacts/{run_id}/../secret.txt').status_code == 404
    assert client.get('/artifacts/not-a-run/diff.png').status_code == 404
    assert client.get(f'/artifacts/{run_id}/diff.png').status_code == 404


@pytest.mark.parametrize('body', [
    ['https://example.com/design.png', 'https://example.com'],
    'https://example.com',
    {'referenceImageUrl': 42, 'pageUrl': 'https://example.com'},
    {'referenceImageUrl': 'https://example.com/design.png', 'pageUrl': ['https://example.com']},
])
def test_compare_rejects_malformed_bodies(client, body):
    response = client.post('/compare', json=body)
    assert response.status_code == 400
    assert response.get_json()['error'] == 'Missing required parameters'


def test_non_finite_option_is_bad_request(client, fake_acquisition):
    response = client.post('/compare', data=json.dumps({
        'referenceImageUrl': 'https://example.com/design.png',
        'pageUrl': 'https://example.com',
        'options': {'tolerance': 1e999},
    }), content_type='application/json')
    assert response.status_code == 400
    assert response.get_json()['error'] == 'PolicyError'


def test_oversized_search_radius_is_bad_request(client, fake_acquisition):
    response = client.post('/compare', json={
        'referenceImageUrl': 'https://example.com/design.png',
        'pageUrl': 'https://example.com',
        'options': {'movementSearchRadius': 100000},
    })
    assert response.status_code == 400
    assert response.get_json()['error'] == 'PolicyError'


def test_internal_failure_maps_to_500(client, fake_acquisition, monkeypatch):
    def failing_submit(reference, candidate, policy=None):
        future = Future()
        future.set_exception(InternalError('Image comparison failed: boom'))
        return ComparisonJob(future, threading.Event())

    monkeypatch.setattr(web_app.worker, 'submit', failing_submit)
    response = client.post('/compare', json={
        'referenceImageUrl': 'https://example.com/design.png',
        'pageUrl': 'https://example.com',
    })
    assert response.status_code == 500
    data = response.get_json()
    assert data['error'] == 'InternalError'
    assert data['userCorrectable'] is False


def test_comparison_timeout_maps_to_504(client, fake_acquisition, monkeypatch):
    events = []

    def stalled_submit(reference, candidate, policy=None):
        event = threading.Event()
        events.append(event)
        return ComparisonJob(Future(), event)

    monkeypatch.setattr(web_app.worker, 'submit', stalled_submit)
    monkeypatch.setitem(web_app.app.config, 'COMPARISON_TIMEOUT', 0.01)
    response = client.post('/compare', json={
        'referenceImageUrl': 'https://example.com/design.png',
        'pageUrl': 'https://example.com',
    })
    assert response.status_code == 504
    assert response.get_json()['error'] == 'ComparisonCancelled'
    assert events[0].is_set()


def test_failed_run_leaves_no_directory(client, tmp_path, monkeypatch):
    def broken(page_url, output_path):
        raise RenderError('Failed to load page: 500', url=page_url)

    monkeypatch.setattr(web_app, 'acquire_reference_from_url',
                        lambda url, path: RasterImage.solid(2, 2, (0, 0, 0)).save(path))
    monkeypatch.setattr(web_app, 'acquire_candidate', broken)
    client.post('/compare', json={
        'referenceImageUrl': 'https://example.com/design.png',
        'pageUrl': 'https://example.com',
    })
    assert list(tmp_path.iterdir()) == []


def test_stale_runs_are_pruned_on_new_run(client, tmp_path, fake_acquisition, monkeypatch):
    stale = tmp_path / ('b' * 32)
    stale.mkdir()
    os.utime(stale, (0, 0))
    monkeypatch.setitem(web_app.app.config, 'ARTIFACTS_TTL', 60)
    response = client.post('/compare', json={
        'referenceImageUrl': 'https://example.com/design.png',
        'pageUrl': 'https://example.com',
    })
    assert response.status_code == 200
    assert not stale.exists()
    assert (tmp_path / response.get_json()['runId']).is_dir()


def test_responses_allow_cross_origin_clients(client):
    response = client.get('/health')
    assert response.headers['Access-Control-Allow-Origin'] == '*'
    preflight = client.open('/compare', method='OPTIONS')
    assert preflight.status_code == 200
    assert 'POST' in preflight.headers['Access-Control-Allow-Methods']
