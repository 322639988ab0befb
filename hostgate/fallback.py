"""Catch-all fallback for requests whose Host has no route.

Registered LAST in create_app() so every explicit route wins.

Behaviour (config `static:` section):
  - GET/HEAD with static.directory set and present:
      1. a file under the directory matching the request path → that file
      2. otherwise static.index (single-page-app entry point), if present
  - anything else → 404 {"error": "Not found"}

Paths are resolved and must stay inside static.directory; `..` escapes fall
through to the index.
"""

from __future__ import annotations

import pathlib
from typing import Optional

from fastapi import APIRouter, Request
from fastapi.responses import FileResponse, JSONResponse, Response

from hostgate.config import StaticConfig
from hostgate.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["fallback"])

_NOT_FOUND_BODY = {"error": "Not found"}


def resolve_static_file(static: StaticConfig, request_path: str) -> Optional[pathlib.Path]:
    """Return the file to serve for ``request_path``, or None.

    Tries the path itself under ``static.directory``, then the index file.
    Never returns a path outside the directory.
    """
    if not static.directory:
        return None

    root = pathlib.Path(static.directory).expanduser().resolve()
    if not root.is_dir():
        return None

    relative = request_path.lstrip("/")
    if relative:
        candidate = (root / relative).resolve()
        if candidate.is_relative_to(root) and candidate.is_file():
            return candidate

    index = (root / static.index).resolve()
    if index.is_relative_to(root) and index.is_file():
        return index
    return None


@router.api_route(
    "/{path:path}",
    methods=["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    include_in_schema=False,
)
async def fallback(request: Request, path: str) -> Response:
    config = getattr(request.app.state, "config", None)
    if request.method in ("GET", "HEAD") and config is not None:
        file_path = resolve_static_file(config.static, request.url.path)
        if file_path is not None:
            logger.debug("fallback_static", path=request.url.path, file=str(file_path))
            return FileResponse(file_path)

    logger.info(
        "fallback_not_found",
        host=request.headers.get("host"),
        method=request.method,
        path=request.url.path,
    )
    return JSONResponse(status_code=404, content=_NOT_FOUND_BODY)
