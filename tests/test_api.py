import base64

import httpx
import pytest
from fastapi.testclient import TestClient

from pdf_region_service import __version__
from pdf_region_service.main import create_app, retryable_status
from pdf_region_service.core.capabilities import SourceFetchError
from pdf_region_service.models.config import APIConfig
from pdf_region_service.services.source_fetcher import HttpSourceFetcher

from conftest import PNG_SIGNATURE, StaticFetcher


SECRET = "test-secret"
PDF_URL = "https://files.example/doc.pdf"


def _config(**overrides) -> APIConfig:
    values = {"processor_secret": SECRET, "max_images_per_request": 5}
    values.update(overrides)
    return APIConfig(**values)


def _payload(images, **extra):
    body = {"requestId": "req-42", "file": {"url": PDF_URL}, "images": images}
    body.update(extra)
    return body


def _image(image_id, page_index, coordinates):
    return {"imageId": image_id, "pageIndex": page_index, "coordinates": coordinates}


@pytest.fixture
def pdf_transport(two_page_pdf):
    requested = []

    def handler(request):
        requested.append(str(request.url))
        return httpx.Response(200, content=two_page_pdf)

    transport = httpx.MockTransport(handler)
    transport.requested = requested
    return transport


@pytest.fixture
def client(pdf_transport):
    fetcher = HttpSourceFetcher(httpx.AsyncClient(transport=pdf_transport))
    return TestClient(create_app(config=_config(), fetcher=fetcher))


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "version": __version__}


def test_root_lists_endpoints(client):
    body = client.get("/").json()
    assert body["version"] == __version__
    assert body["health"] == "/health"


def test_extract_returns_one_result_per_image(client, pdf_transport):
    payload = _payload([
        _image("fig-1", 0, [0, 0, 500, 500]),
        _image("fig-2", 1, [500, 200, 900, 700]),
        _image("empty", 0, [100, 100, 100, 100]),
    ])

    response = client.post("/v1/extract", json=payload,
                           headers={"x-image-processor-secret": SECRET})

    assert response.status_code == 200
    body = response.json()
    assert body["requestId"] == "req-42"
    assert len(body["results"]) == 3
    assert pdf_transport.requested == [PDF_URL]

    results = {r["imageId"]: r for r in body["results"]}
    first = results["fig-1"]
    assert first["status"] == "success"
    assert first["mimeType"] == "image/png"
    assert (first["width"], first["height"]) == (340, 440)
    assert base64.b64decode(first["bytesBase64"])[:8] == PNG_SIGNATURE

    assert results["fig-2"]["status"] == "success"

    empty = results["empty"]
    assert empty["status"] == "failed"
    assert empty["errorCode"] == "CROP_CONVERSION_FAILED"
    assert "Invalid crop region" in empty["errorMessage"]
    assert empty["bytesBase64"] is None


def test_legacy_path_is_served(client):
    response = client.post("/v1/process-document-images",
                           json=_payload([_image("a", 0, [0, 0, 500, 500])]),
                           headers={"x-image-processor-secret": SECRET})
    assert response.status_code == 200
    assert response.json()["results"][0]["status"] == "success"


def test_missing_page_is_reported_per_image(client):
    response = client.post("/v1/extract",
                           json=_payload([_image("ok", 0, [0, 0, 500, 500]),
                                          _image("gone", 9, [0, 0, 500, 500])]),
                           headers={"x-image-processor-secret": SECRET})

    results = {r["imageId"]: r for r in response.json()["results"]}
    assert results["ok"]["status"] == "success"
    assert results["gone"]["errorCode"] == "PAGE_INDEX_OUT_OF_BOUNDS"


def test_fetch_failure_is_reported_per_image():
    fetcher = StaticFetcher(error=SourceFetchError("Unable to fetch PDF: HTTP 404", status_code=404))
    client = TestClient(create_app(config=_config(), fetcher=fetcher))

    response = client.post("/v1/extract",
                           json=_payload([_image("a", 0, [0, 0, 500, 500]),
                                          _image("b", 1, [0, 0, 500, 500])]),
                           headers={"x-image-processor-secret": SECRET})

    assert response.status_code == 200
    assert [r["errorCode"] for r in response.json()["results"]] == ["SOURCE_FETCH_FAILED"] * 2


@pytest.mark.parametrize("headers", [{}, {"x-image-processor-secret": "wrong"}])
def test_bad_secret_is_rejected(client, headers):
    response = client.post("/v1/extract", json=_payload([_image("a", 0, [0, 0, 500, 500])]),
                           headers=headers)
    assert response.status_code == 401
    body = response.json()
    assert body["success"] is False
    assert body["error"]["code"] == "UNAUTHORIZED"


def test_secret_is_checked_before_the_body(client, pdf_transport):
    response = client.post("/v1/extract", content=b"{not json",
                           headers={"content-type": "application/json"})

    assert response.status_code == 401
    assert response.json()["error"]["code"] == "UNAUTHORIZED"
    assert pdf_transport.requested == []


def test_malformed_body_with_secret_is_invalid(client):
    response = client.post("/v1/extract", content=b"{not json",
                           headers={"content-type": "application/json",
                                    "x-image-processor-secret": SECRET})
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "INVALID_REQUEST"


def test_unset_secret_rejects_everything():
    client = TestClient(create_app(config=_config(processor_secret=""), fetcher=StaticFetcher()))
    response = client.post("/v1/extract", json=_payload([_image("a", 0, [0, 0, 500, 500])]),
                           headers={"x-image-processor-secret": ""})
    assert response.status_code == 401


def test_too_many_images(client, pdf_transport):
    images = [_image(f"img{i}", 0, [0, 0, 500, 500]) for i in range(6)]
    response = client.post("/v1/extract", json=_payload(images),
                           headers={"x-image-processor-secret": SECRET})

    assert response.status_code == 400
    error = response.json()["error"]
    assert error["code"] == "TOO_MANY_IMAGES"
    assert error["details"] == {"count": 6, "limit": 5}
    assert pdf_transport.requested == []


@pytest.mark.parametrize("payload", [
    _payload([_image("a", 0, [0, 0, 500])]),
    _payload([_image("a", -1, [0, 0, 500, 500])]),
    _payload([_image("a", 0, [0, 0, "x", 500])]),
    {"requestId": "req-42", "images": []},
    _payload([], file={"url": "not a url"}),
])
def test_invalid_payload(client, payload):
    response = client.post("/v1/extract", json=payload,
                           headers={"x-image-processor-secret": SECRET})
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "INVALID_REQUEST"


def test_empty_batch_is_accepted(client):
    response = client.post("/v1/extract", json=_payload([]),
                           headers={"x-image-processor-secret": SECRET})
    assert response.status_code == 200
    assert response.json() == {"requestId": "req-42", "results": []}


def test_retryable_upstream_error_maps_to_503():
    class UpstreamFetcher(StaticFetcher):
        async def fetch(self, url, timeout_ms, max_bytes, size_hint=None):
            request = httpx.Request("GET", url)
            raise httpx.HTTPStatusError(
                "Bad gateway", request=request, response=httpx.Response(502, request=request)
            )

    client = TestClient(create_app(config=_config(), fetcher=UpstreamFetcher()),
                        raise_server_exceptions=False)
    response = client.post("/v1/extract", json=_payload([_image("a", 0, [0, 0, 500, 500])]),
                           headers={"x-image-processor-secret": SECRET})

    assert response.status_code == 503
    error = response.json()["error"]
    assert error["code"] == "UPSTREAM_UNAVAILABLE"
    assert error["details"] == {"upstreamStatus": 502}


def test_unexpected_error_maps_to_500():
    client = TestClient(create_app(config=_config(),
                                   fetcher=StaticFetcher(error=LookupError("bug"))),
                        raise_server_exceptions=False)
    response = client.post("/v1/extract", json=_payload([_image("a", 0, [0, 0, 500, 500])]),
                           headers={"x-image-processor-secret": SECRET})

    assert response.status_code == 500
    assert response.json()["error"]["code"] == "INTERNAL_ERROR"


def test_retryable_status_walks_the_cause_chain():
    try:
        try:
            raise SourceFetchError("rate limited", status_code=429)
        except SourceFetchError as e:
            raise RuntimeError("batch failed") from e
    except RuntimeError as outer:
        assert retryable_status(outer) == 429

    assert retryable_status(SourceFetchError("gone", status_code=404)) is None
    assert retryable_status(ValueError("plain")) is None
