"""
Blob Store Tests
"""
import io
import os
import time
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from conftest import CSV_BYTES
from pdf2csv.errors import InvalidInput, NotFound, UpstreamUnavailable
from pdf2csv.services.blob_store import (
    DatabaseBlobStore,
    LocalBlobStore,
    S3BlobStore,
    artifact_key,
    build_blob_store,
    download_filename,
    validate_key,
)


def client_error(code, status, operation='HeadObject'):
    return ClientError(
        {'Error': {'Code': code, 'Message': code}, 'ResponseMetadata': {'HTTPStatusCode': status}},
        operation,
    )


class TestKeys:
    """Test key helpers"""

    def test_artifact_key_layout(self):
        key = artifact_key('abcdefghijkl', 'My Report.pdf')
        prefix, stamp_name = key.rsplit('/', 1)
        assert prefix == 'jobs/abcdefghijkl'
        stamp, name = stamp_name.split('-', 1)
        assert stamp.isdigit()
        assert name == 'My_Report.csv'

    def test_artifact_key_fallback_name(self):
        assert artifact_key('abcdefghijkl', '../..').endswith('-converted.csv')
        assert artifact_key('abcdefghijkl').endswith('-converted.csv')

    def test_download_filename(self):
        assert download_filename('jobs/abc/123-report.csv') == '123-report.csv'
        assert download_filename('jobs/abc/raw') == 'raw.csv'

    def test_validate_key_strips_leading_slash(self):
        assert validate_key('/jobs/a/b.csv') == 'jobs/a/b.csv'

    @pytest.mark.parametrize('key', ['', '/', 'jobs/../secret', './a.csv', 'a//b.csv', 'a\\b.csv', 'a\x00b', None])
    def test_validate_key_rejects(self, key):
        with pytest.raises(InvalidInput):
            validate_key(key)


class TestLocalBlobStore:
    """Test the filesystem backend"""

    def test_put_get(self, local_store):
        ref = local_store.put('jobs/abc/1-a.csv', CSV_BYTES)
        assert ref == 'jobs/abc/1-a.csv'
        assert local_store.get(ref) == CSV_BYTES
        assert local_store.exists(ref)
        assert os.path.isfile(os.path.join(local_store.root, 'jobs', 'abc', '1-a.csv'))

    def test_locate_points_at_download_route(self, local_store):
        ref = local_store.put('jobs/abc/1-my file.csv', CSV_BYTES)
        location = local_store.locate(ref)
        assert location.url == 'http://localhost/api/files/download/jobs/abc/1-my%20file.csv'
        assert location.expires_in_seconds is None

    def test_missing_file(self, local_store):
        assert not local_store.exists('jobs/abc/nope.csv')
        with pytest.raises(NotFound):
            local_store.get('jobs/abc/nope.csv')
        with pytest.raises(NotFound):
            local_store.locate('jobs/abc/nope.csv')

    def test_traversal_rejected(self, local_store):
        with pytest.raises(InvalidInput):
            local_store.get('../outside.csv')

    def test_delete(self, local_store):
        ref = local_store.put('jobs/abc/1-a.csv', CSV_BYTES)
        assert local_store.delete(ref) is True
        assert local_store.delete(ref) is False
        assert not local_store.exists(ref)

    def test_stats(self, local_store):
        local_store.put('jobs/a/1.csv', b'x' * 10)
        local_store.put('jobs/b/2.csv', b'y' * 20)
        stats = local_store.stats()
        assert stats['totalFiles'] == 2
        assert stats['totalSizeBytes'] == 30
        assert stats['totalSizeMB'] == '0.00'

    def test_cleanup_only_old_files(self, local_store):
        old = local_store.put('jobs/a/old.csv', CSV_BYTES)
        new = local_store.put('jobs/a/new.csv', CSV_BYTES)
        two_days_ago = time.time() - 48 * 3600
        os.utime(local_store.file_path(old), (two_days_ago, two_days_ago))

        assert local_store.cleanup(24) == 1
        assert not local_store.exists(old)
        assert local_store.exists(new)

    def test_put_failure_is_upstream_error(self, local_store, monkeypatch):
        def broken_makedirs(path, exist_ok=False):
            raise PermissionError(13, 'Permission denied')

        monkeypatch.setattr('pdf2csv.services.blob_store.os.makedirs', broken_makedirs)
        with pytest.raises(UpstreamUnavailable):
            local_store.put('jobs/abc/1-a.csv', CSV_BYTES)

    def test_health_check(self, local_store):
        assert local_store.health_check() is True


class TestS3BlobStore:
    """Test the S3 backend against a mocked boto3 client"""

    @pytest.fixture
    def s3(self):
        return MagicMock()

    @pytest.fixture
    def store(self, s3):
        return S3BlobStore('pdf2csv-bucket', client=s3, presign_expires_seconds=900)

    def test_requires_bucket(self, s3):
        with pytest.raises(ValueError):
            S3BlobStore('', client=s3)

    def test_put(self, store, s3):
        s3.put_object.return_value = {'ETag': '"abc"'}
        assert store.put('jobs/abc/1-a.csv', CSV_BYTES) == 'jobs/abc/1-a.csv'
        kwargs = s3.put_object.call_args.kwargs
        assert kwargs['Bucket'] == 'pdf2csv-bucket'
        assert kwargs['Key'] == 'jobs/abc/1-a.csv'
        assert kwargs['Body'] == CSV_BYTES
        assert kwargs['ContentType'] == 'text/csv'
        assert 'uploaded-at' in kwargs['Metadata']

    def test_put_failure(self, store, s3):
        s3.put_object.side_effect = EndpointConnectionError(endpoint_url='https://s3.test')
        with pytest.raises(UpstreamUnavailable):
            store.put('jobs/abc/1-a.csv', CSV_BYTES)

    def test_get(self, store, s3):
        s3.get_object.return_value = {'Body': io.BytesIO(CSV_BYTES)}
        assert store.get('jobs/abc/1-a.csv') == CSV_BYTES

    def test_get_missing(self, store, s3):
        s3.get_object.side_effect = client_error('NoSuchKey', 404, 'GetObject')
        with pytest.raises(NotFound):
            store.get('jobs/abc/1-a.csv')

    def test_get_denied(self, store, s3):
        s3.get_object.side_effect = client_error('AccessDenied', 403, 'GetObject')
        with pytest.raises(UpstreamUnavailable):
            store.get('jobs/abc/1-a.csv')

    def test_locate_presigns(self, store, s3):
        s3.generate_presigned_url.return_value = 'https://signed.example/x'
        location = store.locate('jobs/abc/1-a.csv')
        assert location.url == 'https://signed.example/x'
        assert location.expires_in_seconds == 900

        args, kwargs = s3.generate_presigned_url.call_args
        assert args[0] == 'get_object'
        assert kwargs['ExpiresIn'] == 900
        assert kwargs['Params']['Key'] == 'jobs/abc/1-a.csv'
        assert kwargs['Params']['ResponseContentDisposition'] == 'attachment; filename="1-a.csv"'

    def test_exists(self, store, s3):
        assert store.exists('jobs/abc/1-a.csv') is True
        s3.head_object.side_effect = client_error('404', 404)
        assert store.exists('jobs/abc/1-a.csv') is False

    def test_exists_other_error(self, store, s3):
        s3.head_object.side_effect = client_error('AccessDenied', 403)
        with pytest.raises(UpstreamUnavailable):
            store.exists('jobs/abc/1-a.csv')

    def test_delete(self, store, s3):
        assert store.delete('jobs/abc/1-a.csv') is True
        s3.delete_object.assert_called_once_with(Bucket='pdf2csv-bucket', Key='jobs/abc/1-a.csv')
        s3.delete_object.side_effect = client_error('AccessDenied', 403, 'DeleteObject')
        assert store.delete('jobs/abc/1-a.csv') is False

    def test_health_check(self, store, s3):
        assert store.health_check() is True
        s3.head_bucket.side_effect = client_error('NoSuchBucket', 404, 'HeadBucket')
        assert store.health_check() is False


class TestDatabaseBlobStore:
    """Test the database backend"""

    @pytest.fixture
    def store(self, app):
        with app.app_context():
            yield DatabaseBlobStore(base_url='http://localhost')

    def test_put_get(self, store):
        ref = store.put('jobs/abc/1-a.csv', CSV_BYTES)
        assert store.get(ref) == CSV_BYTES
        assert store.exists(ref)

    def test_put_overwrites(self, store):
        store.put('jobs/abc/1-a.csv', b'old')
        store.put('jobs/abc/1-a.csv', CSV_BYTES)
        assert store.get('jobs/abc/1-a.csv') == CSV_BYTES
        assert store.stats()['totalFiles'] == 1

    def test_locate(self, store):
        ref = store.put('jobs/abc/1-a.csv', CSV_BYTES)
        location = store.locate(ref)
        assert location.url == 'http://localhost/api/files/download/jobs/abc/1-a.csv'
        assert location.expires_in_seconds is None

    def test_missing(self, store):
        assert not store.exists('jobs/abc/none.csv')
        with pytest.raises(NotFound):
            store.get('jobs/abc/none.csv')
        with pytest.raises(NotFound):
            store.locate('jobs/abc/none.csv')

    def test_delete(self, store):
        ref = store.put('jobs/abc/1-a.csv', CSV_BYTES)
        assert store.delete(ref) is True
        assert store.delete(ref) is False

    def test_stats(self, store):
        store.put('jobs/a/1.csv', b'x' * 10)
        store.put('jobs/b/2.csv', b'y' * 5)
        stats = store.stats()
        assert stats['totalFiles'] == 2
        assert stats['totalSizeBytes'] == 15

    def test_health_check(self, store):
        assert store.health_check() is True


class TestBuildBlobStore:
    """Test backend selection"""

    def test_local(self, tmp_path):
        store = build_blob_store({'STORAGE_BACKEND': 'local', 'STORAGE_DIR': str(tmp_path), 'BASE_URL': 'http://x'})
        assert isinstance(store, LocalBlobStore)
        assert store.base_url == 'http://x'

    def test_database(self):
        assert isinstance(build_blob_store({'STORAGE_BACKEND': 'database'}), DatabaseBlobStore)

    def test_s3_requires_bucket(self):
        with pytest.raises(ValueError):
            build_blob_store({'STORAGE_BACKEND': 's3', 'AWS_S3_BUCKET': ''})

    def test_unknown(self):
        with pytest.raises(ValueError):
            build_blob_store({'STORAGE_BACKEND': 'ftp'})
