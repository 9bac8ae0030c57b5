import json

import pytest

from gallery_api.services.errors import InvalidRequestError, InvalidURLError
from gallery_api.services.request_builder import (
    NOCACHE_PARAM,
    RequestBuilder,
    endpoint_key,
    normalize_param,
)


@pytest.fixture
def builder(clock):
    return RequestBuilder(
        base_url="https://app.test/",
        api_tokens=["tok-1"],
        website_property_ids=["111", "222"],
        clock=clock,
    )


@pytest.mark.parametrize(
    "base, endpoint",
    [
        ("https://app.test", "cases"),
        ("https://app.test/", "cases"),
        ("https://app.test", "/cases"),
        ("https://app.test///", "//cases"),
    ],
)
def test_build_url_uses_single_separator(base, endpoint):
    assert RequestBuilder(base).build_url(endpoint) == "https://app.test/cases"


def test_write_body_gets_credentials(builder):
    request = builder.prepare("cases", "POST", {"page": 2})

    assert request.body == {
        "page": 2,
        "apiTokens": ["tok-1"],
        "websitePropertyIds": ["111", "222"],
    }
    assert json.loads(request.content) == request.body


def test_caller_credentials_are_not_overwritten(builder):
    body = {"apiTokens": ["mine"], "websitePropertyIds": []}

    request = builder.prepare("cases", "PUT", body)

    assert request.body["apiTokens"] == ["mine"]
    assert request.body["websitePropertyIds"] == []
    assert body == {"apiTokens": ["mine"], "websitePropertyIds": []}


def test_string_body_is_decoded_before_injection(builder):
    request = builder.prepare("cases", "PATCH", '{"caseId": 7}')
    assert request.body["caseId"] == 7
    assert request.body["apiTokens"] == ["tok-1"]

    request = builder.prepare("cases", "POST", "not json")
    assert request.body == {"apiTokens": ["tok-1"], "websitePropertyIds": ["111", "222"]}


def test_no_credentials_configured_leaves_body_alone(clock):
    builder = RequestBuilder("https://app.test", clock=clock)
    request = builder.prepare("cases", "POST", {"a": 1})
    assert request.body == {"a": 1}


def test_get_has_cache_buster_and_no_body(builder, clock):
    request = builder.prepare("cases/42", "get")

    assert request.method == "GET"
    assert request.url == f"https://app.test/cases/42?{NOCACHE_PARAM}={int(clock())}"
    assert request.content is None
    assert request.headers["Cache-Control"] == "no-cache, no-store, must-revalidate"
    assert request.headers["User-Agent"].startswith("GalleryApiClient/")


def test_cache_buster_appends_to_existing_query(builder, clock):
    request = builder.prepare("cases?page=2", "GET")
    assert request.url.endswith(f"?page=2&{NOCACHE_PARAM}={int(clock())}")


def test_delete_does_not_inject_credentials(builder):
    request = builder.prepare("cases/1", "DELETE")
    assert request.body is None
    assert NOCACHE_PARAM not in request.url


def test_unsupported_method_is_rejected(builder):
    with pytest.raises(InvalidRequestError):
        builder.prepare("cases", "TRACE")


@pytest.mark.parametrize("base", ["not a url", "ftp://app.test", "https://", ""])
def test_malformed_url_fails_fast(clock, base):
    builder = RequestBuilder(base, clock=clock)
    with pytest.raises(InvalidURLError):
        builder.prepare("cases", "GET")


def test_build_endpoint_normalizes_params(builder):
    endpoint = builder.build_endpoint(
        "/cases",
        {"active": True, "ids": [1, 2], "empty": None, "page": 3},
    )

    assert endpoint.startswith("cases?")
    assert "active=1" in endpoint
    assert "ids=%5B1%2C+2%5D" in endpoint
    assert "empty=" in endpoint
    assert "page=3" in endpoint


def test_build_endpoint_filters_allowed_params(builder):
    endpoint = builder.build_endpoint(
        "cases", {"page": 1, "secret": "x"}, allowed_params=["page"]
    )
    assert endpoint == "cases?page=1"


def test_normalize_param_and_endpoint_key():
    assert normalize_param(False) == "0"
    assert normalize_param({"a": 1}) == '{"a": 1}'
    assert normalize_param(5) == "5"
    assert endpoint_key("/cases/42/?page=2") == "cases/42"
