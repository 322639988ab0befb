"""Unit tests for forwarder header rules: Host rewrite and hop-by-hop stripping."""

from __future__ import annotations

import httpx
import pytest

from hostgate.routing.headers import (
    HOP_BY_HOP_HEADERS,
    build_client_response_headers,
    build_forward_headers,
)

# ─── build_forward_headers() ──────────────────────────────────────────────────


class TestBuildForwardHeaders:
    def test_host_rewritten_to_target(self) -> None:
        result = build_forward_headers([(b"host", b"a.example.com")], "10.0.0.5:8080")
        assert result == [(b"host", b"10.0.0.5:8080")]

    def test_host_set_when_client_sent_none(self) -> None:
        result = build_forward_headers([], "127.0.0.1:9001")
        assert result == [(b"host", b"127.0.0.1:9001")]

    @pytest.mark.parametrize("name", sorted(HOP_BY_HOP_HEADERS))
    def test_hop_by_hop_stripped(self, name: str) -> None:
        result = build_forward_headers([(name.encode(), b"x")], "h:1")
        assert name.encode() not in {k.lower() for k, _ in result}

    def test_other_headers_forwarded_unchanged(self) -> None:
        result = build_forward_headers(
            [
                (b"host", b"a.test"),
                (b"content-type", b"application/json"),
                (b"cookie", b"session=abc"),
                (b"x-forwarded-for", b"1.2.3.4"),
                (b"authorization", b"Bearer token"),
            ],
            "h:1",
        )
        assert result == [
            (b"content-type", b"application/json"),
            (b"cookie", b"session=abc"),
            (b"x-forwarded-for", b"1.2.3.4"),
            (b"authorization", b"Bearer token"),
            (b"host", b"h:1"),
        ]

    def test_connection_header_case_insensitive(self) -> None:
        result = build_forward_headers([(b"CONNECTION", b"close")], "h:1")
        assert result == [(b"host", b"h:1")]

    def test_latin1_values_kept_as_bytes(self) -> None:
        value = "café".encode("latin-1")
        result = build_forward_headers([(b"x-name", value)], "h:1")
        assert (b"x-name", b"caf\xe9") in result


# ─── build_client_response_headers() ──────────────────────────────────────────


class TestBuildClientResponseHeaders:
    def test_repeated_set_cookie_preserved(self) -> None:
        upstream = httpx.Headers(
            [
                ("Set-Cookie", "a=1; Domain=backend.local"),
                ("Set-Cookie", "b=2; Path=/"),
            ]
        )
        result = build_client_response_headers(upstream)
        assert result == [
            (b"set-cookie", b"a=1; Domain=backend.local"),
            (b"set-cookie", b"b=2; Path=/"),
        ]

    def test_hop_by_hop_stripped_encoding_kept(self) -> None:
        upstream = httpx.Headers(
            [
                ("Transfer-Encoding", "chunked"),
                ("Connection", "keep-alive"),
                ("Content-Length", "12"),
                ("Content-Encoding", "br"),
                ("Content-Type", "text/html"),
            ]
        )
        result = build_client_response_headers(upstream)
        assert result == [(b"content-encoding", b"br"), (b"content-type", b"text/html")]

    def test_custom_headers_relayed(self) -> None:
        upstream = httpx.Headers({"X-Backend": "blog", "Cache-Control": "no-store"})
        result = dict(build_client_response_headers(upstream))
        assert result[b"x-backend"] == b"blog"
        assert result[b"cache-control"] == b"no-store"
