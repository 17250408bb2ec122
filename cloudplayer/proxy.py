"""Authenticated byte-range proxy serving the manifest, audio and art.

Three logical paths map onto the storage root:

    /db.json (or /db)   -> <root>/db.json
    /music/<name>       -> <root>/music/<name>
    /art/<name>         -> <root>/art/<name>

Music names must carry an audio extension and art names an image
extension; anything else is a 404, as is a path outside these routes.
Other methods on a known path get 405.

Every request except CORS preflight needs X-Auth-Token equal to the
configured secret. Range requests are answered by aiohttp's
FileResponse (206 + Content-Range), which is what seeking relies on.
PUT /db.json replaces the manifest after validating it.
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Awaitable, Callable

from aiohttp import web

from cloudplayer.api import AUTH_HEADER
from cloudplayer.exceptions import ValidationError
from cloudplayer.logging import get_logger
from cloudplayer.manifest import validate_manifest
from cloudplayer.security import SecurityValidator

logger = get_logger(__name__)

STORAGE_ROOT = web.AppKey("storage_root", Path)
AUTH_TOKEN = web.AppKey("auth_token", str)

MANIFEST_KEY = "db.json"
MAX_MANIFEST_SIZE = 64 * 1024 * 1024
ALLOWED_METHODS = ("GET", "HEAD", "PUT", "OPTIONS")

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, PUT, OPTIONS",
    "Access-Control-Allow-Headers": f"{AUTH_HEADER}, Range, Content-Type",
    "Access-Control-Expose-Headers": "Content-Range, Accept-Ranges, Content-Length",
}

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]


@web.middleware
async def cors_auth_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
    """Preflight, method filter and token check, with CORS headers on every answer."""
    if request.method == "OPTIONS":
        return web.Response(status=204, headers=CORS_HEADERS)
    if request.method not in ALLOWED_METHODS:
        return web.Response(status=405, text="Method not allowed", headers=CORS_HEADERS)

    token = request.headers.get(AUTH_HEADER)
    if not SecurityValidator.tokens_match(token, request.app[AUTH_TOKEN]):
        logger.warning("Rejected request for %s: bad token", request.path)
        return web.Response(status=401, text="Unauthorized", headers=CORS_HEADERS)

    try:
        response = await handler(request)
    except web.HTTPException as e:
        e.headers.update(CORS_HEADERS)
        raise
    response.headers.update(CORS_HEADERS)
    return response


def _serve_file(path: Path) -> web.StreamResponse:
    if not path.is_file():
        raise web.HTTPNotFound(text="File not found")
    if not os.access(path, os.R_OK):
        logger.error("Storage error: %s is not readable", path)
        raise web.HTTPBadGateway(text="Storage Error")
    return web.FileResponse(path)


def _resolve(request: web.Request, folder: str, allowed: set) -> Path:
    name = request.match_info["name"]
    if not SecurityValidator.validate_file_extension(name, allowed):
        raise web.HTTPNotFound(text="Not found")
    path = SecurityValidator.validate_storage_name(name, request.app[STORAGE_ROOT] / folder)
    if path is None:
        raise web.HTTPNotFound(text="Not found")
    return path


async def handle_get_manifest(request: web.Request) -> web.StreamResponse:
    return _serve_file(request.app[STORAGE_ROOT] / MANIFEST_KEY)


async def handle_put_manifest(request: web.Request) -> web.Response:
    """Replace db.json; the old manifest stays when the new one is invalid."""
    try:
        manifest = await request.json()
        validate_manifest(manifest)
    except (ValueError, ValidationError) as e:
        # json.JSONDecodeError is a ValueError
        return web.Response(status=400, text=f"Invalid manifest: {e}")

    root = request.app[STORAGE_ROOT]
    try:
        root.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=".db-", suffix=".json", dir=str(root))
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(manifest, f, ensure_ascii=False, indent=2)
        os.replace(tmp_name, root / MANIFEST_KEY)
    except OSError as e:
        logger.error("Failed to store manifest: %s", e, exc_info=True)
        return web.Response(status=502, text="Storage Error")

    logger.info("Manifest replaced: %d tracks", len(manifest["tracks"]))
    return web.json_response({"ok": True, "tracks": len(manifest["tracks"])})


async def handle_music(request: web.Request) -> web.StreamResponse:
    return _serve_file(_resolve(request, "music", SecurityValidator.AUDIO_EXTENSIONS))


async def handle_art(request: web.Request) -> web.StreamResponse:
    return _serve_file(_resolve(request, "art", SecurityValidator.IMAGE_EXTENSIONS))


def create_app(storage_root: Path, auth_token: str) -> web.Application:
    """
    Build the proxy application.

    Args:
        storage_root: Directory holding db.json, music/ and art/
        auth_token: Secret clients must send in X-Auth-Token (empty rejects all)
    """
    if not auth_token:
        logger.warning("Proxy started without an auth token: every request will be rejected")

    app = web.Application(middlewares=[cors_auth_middleware], client_max_size=MAX_MANIFEST_SIZE)
    app[STORAGE_ROOT] = Path(storage_root).resolve()
    app[AUTH_TOKEN] = auth_token

    app.router.add_get("/db.json", handle_get_manifest)
    app.router.add_get("/db", handle_get_manifest)
    app.router.add_put("/db.json", handle_put_manifest)
    app.router.add_get("/music/{name:.+}", handle_music)
    app.router.add_get("/art/{name:.+}", handle_art)
    return app


def run_proxy(storage_root: Path, auth_token: str, host: str = "127.0.0.1", port: int = 8787) -> None:
    """Serve until interrupted."""
    logger.info("Serving %s on http://%s:%d", storage_root, host, port)
    web.run_app(create_app(storage_root, auth_token), host=host, port=port, print=None)
