"""ULID generation for hostgate.

Provides `generate_ulid()`, used for:
  - route record ids assigned by the route stores
  - per-dispatch request_id values in structured log entries

Uses the `python-ulid` library; do not hand-roll ULID generation.
"""

from __future__ import annotations

from ulid import ULID


def generate_ulid() -> str:
    """Generate a new ULID as a 26-character uppercase string.

    Returns:
        str: Crockford Base32 ULID, e.g. ``"01KJ0JRVHYA7KX32VPN5ZSCTMV"``.
    """
    return str(ULID())
