"""
Test Configuration and Fixtures
"""
from datetime import datetime, timedelta, timezone

import pytest
import requests

from pdf2csv import create_app, db, shutdown_app
from pdf2csv.services import get_services
from pdf2csv.services.blob_store import LocalBlobStore
from pdf2csv.services.job_registry import JobRegistry

CALLBACK_SECRET = 'test-callback-secret'
PDF_BYTES = b'%PDF-1.4\n1 0 obj\n<< /Type /Catalog >>\nendobj\ntrailer\n%%EOF\n'
CSV_BYTES = b'invoice,amount\nINV-001,120.50\nINV-002,99.00\n'


class FakeClock:
    """Controllable UTC clock for registry tests"""

    def __init__(self, start=None):
        self.now = start or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)
        return self.now


def make_response(status_code=200):
    resp = requests.Response()
    resp.status_code = status_code
    resp.url = 'http://n8n.test/webhook/pdf2csv'
    return resp


class RecordingPost:
    """Stand-in for requests.post that records calls"""

    def __init__(self, status_code=200, exc=None):
        self.status_code = status_code
        self.exc = exc
        self.calls = []

    def __call__(self, url, **kwargs):
        files = kwargs.get('files') or {}
        name, stream, content_type = files['file']
        self.calls.append({
            'url': url,
            'filename': name,
            'content': stream.read(),
            'content_type': content_type,
            'data': kwargs.get('data'),
            'headers': kwargs.get('headers'),
            'timeout': kwargs.get('timeout'),
        })
        if self.exc is not None:
            raise self.exc
        return make_response(self.status_code)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def registry(clock):
    """Standalone registry on a fake clock, 1 hour TTL"""
    reg = JobRegistry(ttl_seconds=3600, sweep_interval_seconds=60, clock=clock)
    yield reg
    reg.stop()


@pytest.fixture
def local_store(tmp_path):
    return LocalBlobStore(str(tmp_path / 'blobs'), base_url='http://localhost')


@pytest.fixture
def app(tmp_path):
    """Create application for testing"""
    app = create_app(
        'testing',
        STORAGE_DIR=str(tmp_path / 'storage'),
        UPLOAD_DIR=str(tmp_path / 'uploads'),
    )
    yield app
    shutdown_app(app)
    with app.app_context():
        db.drop_all()


@pytest.fixture
def client(app):
    """Create test client"""
    return app.test_client()


@pytest.fixture
def services(app):
    with app.app_context():
        yield get_services()


@pytest.fixture
def accepted_post(monkeypatch):
    """Conversion webhook that accepts every upload"""
    post = RecordingPost(status_code=200)
    monkeypatch.setattr('pdf2csv.services.dispatcher.requests.post', post)
    return post
