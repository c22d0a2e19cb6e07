from __future__ import annotations

import logging
import re
import time
import uuid
from contextlib import asynccontextmanager
from typing import Dict, Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from he_subtitles.common import REQUEST_ID, file_api_id, is_source_url, setup_logging
from he_subtitles.convert import ensure_header
from he_subtitles.extract import SubtitleExtractionError
from he_subtitles.fetch import UpstreamError
from he_subtitles.metrics import REQ_LATENCY, SERVED_COUNT
from he_subtitles.service import SubtitleService
from he_subtitles.settings import get_settings

log = logging.getLogger("he_subtitles.app")

_SERVICE: Optional[SubtitleService] = None


def get_service() -> SubtitleService:
    global _SERVICE
    if _SERVICE is None:
        _SERVICE = SubtitleService(get_settings())
    return _SERVICE


@asynccontextmanager
async def lifespan(_: FastAPI):
    settings = get_settings()
    setup_logging(settings.log_level, settings.json_logs)
    log.info("starting %s v%s", MANIFEST["name"], settings.version)
    try:
        yield
    finally:
        global _SERVICE
        if _SERVICE is not None:
            await _SERVICE.aclose()
            _SERVICE = None


# ---------------------------------------------------------------------
# App + middleware
# ---------------------------------------------------------------------
app = FastAPI(title="Wizdom Hebrew Subtitles", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Content-Length", "Content-Range", "Accept-Ranges"],
)


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    incoming = request.headers.get("x-request-id")
    rid = incoming or uuid.uuid4().hex[:16]
    token = REQUEST_ID.set(rid)
    try:
        response = await call_next(request)
    finally:
        REQUEST_ID.reset(token)
    response.headers["X-Request-ID"] = rid
    return response


# ---------------------------------------------------------------------
# Manifest
# ---------------------------------------------------------------------
MANIFEST = {
    "id": "community.wizdom.subs",
    "version": get_settings().version,
    "name": "Wizdom Subtitles (HEB)",
    "description": "Hebrew subtitles from wizdom.xyz, served as WebVTT",
    "catalogs": [],
    "resources": ["subtitles"],
    "types": ["movie", "series"],
    "idPrefixes": ["tt"],
    "behaviorHints": {"configurable": False, "configurationRequired": False},
}


@app.get("/manifest.json")
async def manifest() -> JSONResponse:
    return JSONResponse(MANIFEST)


@app.get("/vidi/manifest.json")
async def vidi_manifest() -> JSONResponse:
    return JSONResponse(MANIFEST)


@app.get("/vidi/configure")
async def vidi_configure() -> JSONResponse:
    return JSONResponse({"type": "configure", "args": []})


@app.get("/")
async def index() -> JSONResponse:
    return JSONResponse({"status": "ok", "manifest": "/manifest.json", "name": MANIFEST["name"]})


# ---------------------------------------------------------------------
# Health and metrics
# ---------------------------------------------------------------------
@app.get("/health")
async def health() -> JSONResponse:
    return JSONResponse({"status": "OK", "timestamp": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())})


@app.get("/healthz")
async def healthz() -> JSONResponse:
    return JSONResponse({"status": "ok", "version": MANIFEST["version"]})


@app.get("/metrics")
async def metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


# ---------------------------------------------------------------------
# Subtitle search
# ---------------------------------------------------------------------
async def _subtitles_response(media_type: str, item_id: str, route: str) -> JSONResponse:
    started = time.perf_counter()
    try:
        subtitles = await get_service().search_subtitles(media_type, item_id)
    except Exception:
        log.exception("subtitle search failed for %s/%s", media_type, item_id)
        return JSONResponse({"error": "Failed to fetch subtitles"}, status_code=500)
    finally:
        REQ_LATENCY.labels(route=route).observe(time.perf_counter() - started)
    log.info("returning %d subtitles for %s/%s", len(subtitles), media_type, item_id)
    return JSONResponse({"subtitles": subtitles}, headers={"Access-Control-Allow-Origin": "*"})


# ``item_id`` may carry ``.json`` and any trailing segment; both are stripped when parsed
@app.get("/subtitles/{media_type}/{item_id:path}")
async def subtitles(media_type: str, item_id: str) -> JSONResponse:
    return await _subtitles_response(media_type, item_id, "subtitles")


@app.get("/vidi/subtitles/{media_type}/{item_id:path}")
async def vidi_subtitles(media_type: str, item_id: str) -> JSONResponse:
    return await _subtitles_response(media_type, item_id, "vidi")


# ---------------------------------------------------------------------
# Caption proxy
# ---------------------------------------------------------------------
CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, HEAD, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Range",
}
VTT_MEDIA_TYPE = "text/vtt; charset=utf-8"
_RANGE_RE = re.compile(r"bytes=(\d+)-(\d*)")


def _caption_headers(src: Optional[str]) -> Dict[str, str]:
    name = f"wizdom-{file_api_id(src) or 'subtitle'}.vtt"
    return {
        **CORS_HEADERS,
        "Content-Disposition": f'inline; filename="{name}"',
        "Accept-Ranges": "bytes",
        "Cache-Control": "public, max-age=300",
    }


def _serve_caption(request: Request, content: bytes, src: Optional[str], route: str) -> Response:
    content = ensure_header(content)
    headers = _caption_headers(src)
    total = len(content)

    if request.method == "HEAD":
        headers["Content-Length"] = str(total)
        return Response(status_code=200, media_type=VTT_MEDIA_TYPE, headers=headers)

    range_header = request.headers.get("range")
    if range_header:
        match = _RANGE_RE.match(range_header.strip())
        start = int(match.group(1)) if match else total
        end = min(int(match.group(2)), total - 1) if match and match.group(2) else total - 1
        if match is None or start >= total or end < start:
            headers["Content-Range"] = f"bytes */{total}"
            return Response(status_code=416, headers=headers)
        chunk = content[start : end + 1]
        headers["Content-Range"] = f"bytes {start}-{end}/{total}"
        log.info("served VTT range %d-%d (%d bytes)", start, end, len(chunk))
        SERVED_COUNT.labels(route=route).inc()
        return Response(content=chunk, status_code=206, media_type=VTT_MEDIA_TYPE, headers=headers)

    log.info("served VTT full (%d bytes)", total)
    SERVED_COUNT.labels(route=route).inc()
    return Response(content=content, media_type=VTT_MEDIA_TYPE, headers=headers)


def _failure(request: Request, status_code: int, message: str) -> Response:
    if request.method == "HEAD":
        return Response(status_code=status_code, headers=CORS_HEADERS)
    return PlainTextResponse(message, status_code=status_code, headers=CORS_HEADERS)


@app.api_route("/proxy/vtt", methods=["GET", "HEAD", "OPTIONS"])
@app.api_route("/proxy/vtt.vtt", methods=["GET", "HEAD", "OPTIONS"])
async def proxy_vtt(request: Request) -> Response:
    if request.method == "OPTIONS":
        return Response(status_code=200, headers=CORS_HEADERS)
    params = request.query_params
    src = params.get("src")
    if not src:
        return _failure(request, 400, "missing src")
    if not is_source_url(src, get_settings().source_domain):
        return _failure(request, 400, "src not allowed")
    started = time.perf_counter()
    try:
        asset = await get_service().caption(src, params.get("se") or None, params.get("title") or None)
    except (SubtitleExtractionError, UpstreamError, httpx.HTTPError) as exc:
        log.warning("proxy error for %s: %s", src, exc)
        return _failure(request, 500, "failed to fetch/convert subtitles")
    finally:
        REQ_LATENCY.labels(route="proxy").observe(time.perf_counter() - started)
    return _serve_caption(request, asset.data, src, "proxy")


@app.api_route("/proxy/vtt-episode", methods=["GET", "HEAD", "OPTIONS"])
async def proxy_vtt_episode(request: Request) -> Response:
    if request.method == "OPTIONS":
        return Response(status_code=200, headers=CORS_HEADERS)
    params = request.query_params
    post = params.get("post") or None
    fallback = params.get("fallback") or None
    if not post and not fallback:
        return _failure(request, 400, "missing post/fallback")
    domain = get_settings().source_domain
    if any(url and not is_source_url(url, domain) for url in (post, fallback)):
        return _failure(request, 400, "src not allowed")
    started = time.perf_counter()
    try:
        asset = await get_service().episode_caption(
            post, params.get("se") or None, params.get("title") or None, fallback
        )
    except (SubtitleExtractionError, UpstreamError, httpx.HTTPError, ValueError) as exc:
        log.warning("episode proxy error for %s: %s", post or fallback, exc)
        return _failure(request, 500, "failed to fetch/convert subtitles")
    finally:
        REQ_LATENCY.labels(route="proxy-episode").observe(time.perf_counter() - started)
    return _serve_caption(request, asset.data, fallback or post, "proxy-episode")
