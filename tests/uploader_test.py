from __future__ import annotations

import io
import urllib.error
import urllib.request
from urllib.parse import parse_qs, urlparse

import pytest

from platcov.errors import UploadError
from platcov.settings import EnvSecretStore, Secret
from platcov.uploader import CodecovClient, build_payload, redact

COMMIT = "0123456789abcdef0123456789abcdef01234567"


class _Response(io.BytesIO):
    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


@pytest.fixture
def report(tmp_path):
    p = tmp_path / "lcov.info"
    p.write_text("SF:src/lib.rs\nDA:1,1\nend_of_record\n", encoding="utf-8")
    return p


@pytest.fixture
def requests(monkeypatch):
    """Record urlopen calls and answer like Codecov's v4 endpoint."""
    seen = []

    def fake_urlopen(req, *args, **kwargs):
        seen.append(req)
        if req.get_method() == "POST":
            return _Response(b"https://codecov.io/gh/acme/rain/commit/abc\nhttps://storage.example/put?sig=1\n")
        return _Response(b"")

    monkeypatch.setattr(urllib.request, "urlopen", fake_urlopen)
    return seen


def test_payload_marks_each_file(report, tmp_path):
    body = build_payload(["lcov.info"], root=tmp_path).decode("utf-8")

    assert body.startswith("# path=lcov.info\nSF:src/lib.rs")
    assert body.endswith("\n<<<<<< EOF\n")


def test_payload_missing_file_is_upload_error(tmp_path):
    with pytest.raises(UploadError):
        build_payload(["lcov.info"], root=tmp_path)


def test_upload_posts_then_puts_report(report, tmp_path, requests):
    lines = []
    client = CodecovClient(Secret("s3cr3t-token"), "https://codecov.io/", log=lines.append)

    result = client.upload(["lcov.info"], commit=COMMIT, branch="main", root=tmp_path)

    assert result.report_url == "https://codecov.io/gh/acme/rain/commit/abc"
    post, put = requests
    assert post.get_method() == "POST"
    query = parse_qs(urlparse(post.full_url).query)
    assert query["commit"] == [COMMIT]
    assert query["branch"] == ["main"]
    assert query["token"] == ["s3cr3t-token"]
    assert put.get_method() == "PUT"
    assert put.full_url == "https://storage.example/put?sig=1"
    assert put.data.startswith(b"# path=lcov.info\n")
    # verbose output never carries the token
    assert lines
    assert all("s3cr3t-token" not in ln for ln in lines)


def test_http_error_is_upload_error(report, tmp_path, monkeypatch):
    def fake_urlopen(req, *args, **kwargs):
        raise urllib.error.HTTPError(req.full_url, 401, "Unauthorized", {}, io.BytesIO(b"bad token"))

    monkeypatch.setattr(urllib.request, "urlopen", fake_urlopen)
    client = CodecovClient(Secret("s3cr3t-token"))

    with pytest.raises(UploadError) as info:
        client.upload(["lcov.info"], commit=COMMIT, root=tmp_path)

    assert "401" in info.value.message
    assert "s3cr3t-token" not in str(info.value)


def test_unreachable_service_is_upload_error(report, tmp_path, monkeypatch):
    def fake_urlopen(req, *args, **kwargs):
        raise urllib.error.URLError("Connection refused")

    monkeypatch.setattr(urllib.request, "urlopen", fake_urlopen)

    with pytest.raises(UploadError):
        CodecovClient(Secret("t")).upload(["lcov.info"], commit=COMMIT, root=tmp_path)


def test_unexpected_response_is_upload_error(report, tmp_path, monkeypatch):
    monkeypatch.setattr(urllib.request, "urlopen", lambda req, *a, **kw: _Response(b"oops"))

    with pytest.raises(UploadError):
        CodecovClient(Secret("t")).upload(["lcov.info"], commit=COMMIT, root=tmp_path)


def test_commit_is_required(report, tmp_path, requests):
    with pytest.raises(UploadError):
        CodecovClient(Secret("t")).upload(["lcov.info"], commit="", root=tmp_path)
    assert requests == []


def test_redact_masks_token():
    assert redact("https://codecov.io/upload/v4?commit=abc&token=xyz&branch=main") == (
        "https://codecov.io/upload/v4?commit=abc&token=***&branch=main"
    )


def test_secret_never_shows_value():
    secret = EnvSecretStore({"CODECOV_TOKEN": "s3cr3t-token"}).get("CODECOV_TOKEN")

    assert secret.reveal() == "s3cr3t-token"
    assert "s3cr3t-token" not in repr(secret)
    assert "s3cr3t-token" not in f"{secret}"
    assert EnvSecretStore({}).get("CODECOV_TOKEN") is None
