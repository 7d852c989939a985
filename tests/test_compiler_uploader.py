import hashlib
import json
from datetime import datetime, timezone

import httpx
import pytest

from job_harvest.compiler import LatexCompiler, validate_latex
from job_harvest.config import Settings
from job_harvest.errors import DocumentCompileError, UploadError
from job_harvest.models import JobRecord
from job_harvest.uploader import CloudinaryUploader, clean_slug, sign_params

DOCUMENT = "\\documentclass{article}\\begin{document}Hi\\end{document}"
RECORD = JobRecord(
    company="Acme GmbH",
    role="Senior Backend Engineer (Go)",
    location="Berlin",
    url="https://acme.example/jobs",
    salary="80k",
    source_channel="telegram_channel_remote_jobs",
    raw_snippet="",
    posted_at=datetime(2026, 3, 1, 9, 30, tzinfo=timezone.utc),
)


def _compiler(handler) -> LatexCompiler:
    return LatexCompiler(Settings(), client=httpx.Client(transport=httpx.MockTransport(handler)))


def _uploader(handler, **overrides) -> CloudinaryUploader:
    values = {
        "cloudinary_cloud_name": "demo",
        "cloudinary_api_key": "123456",
        "cloudinary_api_secret": "s3cret",
    }
    values.update(overrides)
    return CloudinaryUploader(
        Settings(**values),
        client=httpx.Client(transport=httpx.MockTransport(handler)),
        now_ms=lambda: 1_700_000_000_123,
    )


def test_validate_latex_requires_all_markers() -> None:
    assert validate_latex(DOCUMENT)
    assert not validate_latex("\\documentclass{article}\\begin{document}Hi")
    assert not validate_latex("   ")
    assert not validate_latex(None)


def test_compile_posts_single_main_resource() -> None:
    bodies: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(201, content=b"%PDF-1.5\n...")

    assert _compiler(handler).compile(DOCUMENT) == b"%PDF-1.5\n..."
    assert bodies == [
        {"compiler": "pdflatex", "resources": [{"main": True, "content": DOCUMENT}]}
    ]


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(400, text="! LaTeX Error"),
        httpx.Response(200, content=b"<html>log output</html>"),
    ],
)
def test_compile_failures_raise(response: httpx.Response) -> None:
    with pytest.raises(DocumentCompileError):
        _compiler(lambda request: response).compile(DOCUMENT)


def test_compile_refuses_empty_input_without_calling_service() -> None:
    calls: list[httpx.Request] = []
    compiler = _compiler(lambda request: calls.append(request) or httpx.Response(200))
    with pytest.raises(DocumentCompileError):
        compiler.compile("  ")
    assert calls == []


def test_is_available_never_raises() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("down", request=request)

    assert not _compiler(handler).is_available()
    assert _compiler(lambda request: httpx.Response(200, content=b"%PDF-1.4")).is_available()


def test_clean_slug() -> None:
    assert clean_slug("Senior Backend Engineer (Go)") == "senior_backend_engineer_go"
    assert clean_slug("") == "unknown"
    assert clean_slug("!!!") == "unknown"


def test_sign_params_skips_empty_values_and_sorts_keys() -> None:
    expected = hashlib.sha1(b"a=1&b=2secret").hexdigest()
    assert sign_params({"b": "2", "a": "1", "c": ""}, "secret") == expected


def test_upload_sends_signed_form_and_returns_secure_url() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"secure_url": "https://res.example/raw/upload/resume.pdf"})

    uploader = _uploader(handler)
    link = uploader.upload_pdf(b"%PDF-1.5", RECORD)

    assert link == "https://res.example/raw/upload/resume.pdf"
    request = seen[0]
    assert str(request.url) == "https://api.cloudinary.com/v1_1/demo/raw/upload"
    body = request.read()
    assert b"resumes/acme_gmbh_senior_backend_engineer_go_1700000000123" in body
    assert b"123456" in body

    params = uploader.build_params(RECORD)
    assert params["timestamp"] == "1700000000"
    assert params["tags"] == "resume,job-application,acme_gmbh"
    assert sign_params(params, "s3cret").encode() in body


def test_upload_requires_credentials() -> None:
    calls: list[httpx.Request] = []
    uploader = _uploader(lambda request: calls.append(request) or httpx.Response(200), cloudinary_api_secret="")
    assert not uploader.is_configured
    with pytest.raises(UploadError):
        uploader.upload_pdf(b"%PDF-1.5", RECORD)
    assert calls == []


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(401, json={"error": {"message": "Invalid Signature"}}),
        httpx.Response(200, json={"public_id": "resumes/x"}),
        httpx.Response(200, text="not json"),
    ],
)
def test_upload_failures_raise(response: httpx.Response) -> None:
    with pytest.raises(UploadError):
        _uploader(lambda request: response).upload_pdf(b"%PDF-1.5", RECORD)
