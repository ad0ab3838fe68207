"""Header policy: override parsing and Referer/Origin resolution."""
import pytest

from hlsrelay.errors import HeaderParseFailure, InvalidUrl
from hlsrelay.headers import (
    USER_AGENT,
    TargetRequest,
    encode_header_param,
    origin_of,
    outbound_headers,
    overrides_or_empty,
    parse_header_overrides,
    resolve_header_set,
)

DEFAULT = "https://rapid-cloud.co/"


def test_parse_overrides_accepts_string_object():
    raw = '{"Referer": "https://site.example/", "X-Token": "abc"}'
    assert parse_header_overrides(raw) == {"Referer": "https://site.example/", "X-Token": "abc"}


@pytest.mark.parametrize("raw", [None, "", "   "])
def test_parse_overrides_empty(raw):
    assert parse_header_overrides(raw) == {}


@pytest.mark.parametrize("raw", ["not-json", "[1, 2]", '"text"', '{"Referer": 5}', '{"X": null}'])
def test_parse_overrides_rejects_bad_payloads(raw):
    with pytest.raises(HeaderParseFailure):
        parse_header_overrides(raw)


def test_overrides_or_empty_swallows_parse_failure():
    assert overrides_or_empty("not-json") == {}
    assert overrides_or_empty('{"Referer": ["a"]}') == {}


def test_referer_override_wins_in_any_case():
    header_set = resolve_header_set({"referer": "https://site.example/page"}, "https://cdn.example/a.m3u8", DEFAULT)
    assert header_set.referer == "https://site.example/page"
    assert header_set.origin == "https://site.example"


def test_referer_falls_back_to_target_origin():
    header_set = resolve_header_set({}, "https://cdn.example:8443/a/b.m3u8", DEFAULT)
    assert header_set.referer == "https://cdn.example:8443/"
    assert header_set.origin == "https://cdn.example:8443"


def test_referer_falls_back_to_default_without_target_origin():
    header_set = resolve_header_set({}, "not a url", DEFAULT)
    assert header_set.referer == DEFAULT
    assert header_set.origin == "https://rapid-cloud.co"


def test_origin_override_is_independent_of_referer():
    header_set = resolve_header_set(
        {"Referer": "https://site.example/", "Origin": "https://other.example"},
        "https://cdn.example/a.m3u8",
        DEFAULT,
    )
    assert header_set.referer == "https://site.example/"
    assert header_set.origin == "https://other.example"


def test_extras_pass_through_without_framing_headers():
    header_set = resolve_header_set(
        {"Referer": "https://site.example/", "X-Token": "abc", "Host": "evil", "Content-Length": "3"},
        "https://cdn.example/a.ts",
        DEFAULT,
    )
    assert header_set.extras == {"X-Token": "abc"}


def test_outbound_headers_identity_and_range():
    header_set = resolve_header_set({"User-Agent": "VLC/3.0"}, "https://cdn.example/a.ts", DEFAULT)
    headers = outbound_headers(header_set, "bytes=100-199")

    assert headers["referer"] == "https://cdn.example/"
    assert headers["origin"] == "https://cdn.example"
    assert headers["accept"] == "*/*"
    assert headers["accept-language"] == "en-US,en;q=0.9"
    assert headers["range"] == "bytes=100-199"
    # caller overrides replace the defaults instead of duplicating them
    assert headers.get_list("user-agent") == ["VLC/3.0"]


def test_outbound_headers_default_user_agent():
    header_set = resolve_header_set({}, "https://cdn.example/a.ts", DEFAULT)
    headers = outbound_headers(header_set)
    assert headers["user-agent"] == USER_AGENT
    assert "range" not in headers


def test_encode_header_param_is_compact():
    assert encode_header_param({"Referer": "https://site.example/"}) == '{"Referer":"https://site.example/"}'
    assert encode_header_param({}) == "{}"


def test_origin_of():
    assert origin_of("https://cdn.example/a/b?c=d") == "https://cdn.example"
    assert origin_of("/relative/path") is None


@pytest.mark.parametrize("url", ["", "cdn.example/a.ts", "ftp://cdn.example/a.ts", "https://"])
def test_target_request_requires_absolute_http_url(url):
    with pytest.raises(InvalidUrl):
        TargetRequest(url=url)
