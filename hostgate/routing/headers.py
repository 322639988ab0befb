"""HTTP header processing for hostgate forwarders.

  - build_forward_headers(): strips hop-by-hop headers and rewrites Host to the
    backend target (changeOrigin); every other request header is forwarded
    byte-for-byte.

  - build_client_response_headers(): strips hop-by-hop headers from the backend
    response; everything else, Content-Encoding and Set-Cookie included, is
    relayed unchanged (cookie domains are never rewritten).

Both directions work on raw (name, value) byte pairs. Header values are
latin-1 on the wire; turning them into str and back through httpx's ASCII
encoding would reject any obs-text value.

RFC 7230 §6.1: hop-by-hop headers MUST NOT be forwarded by intermediaries.
"""

from __future__ import annotations

from typing import Iterable

import httpx

# ─── Constants ────────────────────────────────────────────────────────────────

# Hop-by-hop headers, stripped in both directions (RFC 7230 §6.1).
# content-length is recomputed by httpx from content= on the way out and by
# Starlette's StreamingResponse (chunked) on the way back.
HOP_BY_HOP_HEADERS: frozenset[str] = frozenset(
    {
        "connection",
        "keep-alive",
        "proxy-authenticate",
        "proxy-authorization",
        "te",
        "trailers",
        "transfer-encoding",
        "upgrade",
        "content-length",
    }
)

# The body is relayed as raw bytes, so Content-Encoding still describes it.
RESPONSE_STRIP_HEADERS: frozenset[str] = HOP_BY_HOP_HEADERS

# ─── Public API ───────────────────────────────────────────────────────────────


def build_forward_headers(
    request_headers: Iterable[tuple[bytes, bytes]],
    target: str,
) -> list[tuple[bytes, bytes]]:
    """Build the raw header list sent to a backend.

    Rules applied (in order):
      1. Drop the client's ``Host`` header.
      2. Strip hop-by-hop headers.
      3. Forward all remaining headers unchanged, repeats included.
      4. Append ``host`` set to the target (``host:port`` as configured).

    Args:
        request_headers: (name, value) byte pairs from the inbound request,
                         typically ``request.headers.raw``.
        target:          The forwarder's configured ``proxyTo`` value.
    """
    headers: list[tuple[bytes, bytes]] = []

    for name, value in request_headers:
        lower_name = name.decode("latin-1").lower()
        if lower_name == "host" or lower_name in HOP_BY_HOP_HEADERS:
            continue
        headers.append((name, value))

    headers.append((b"host", target.encode("latin-1")))
    return headers


def build_client_response_headers(
    upstream_headers: httpx.Headers,
) -> list[tuple[bytes, bytes]]:
    """Build the raw header list returned to the client from a backend response.

    Returned as raw (name, value) byte pairs, ready for
    ``Response.raw_headers``, so repeated headers (several ``Set-Cookie``
    lines) survive intact and values are relayed byte-for-byte.
    """
    return [
        (name.lower(), value)
        for name, value in upstream_headers.raw
        if name.decode("latin-1").lower() not in RESPONSE_STRIP_HEADERS
    ]
