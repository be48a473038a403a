import time
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from psycopg import errors as pg_errors

from .config import settings
from .db import close_pools, ping
from .errors import PosError
from .logs import json_log
from .routers.members import router as members_router
from .routers.passes import router as passes_router

STARTED_AT_UTC = datetime.now(timezone.utc)
# Probed by load balancers every few seconds; not worth a log line each.
_UNLOGGED_PATH_PREFIXES = ("/health",)


@asynccontextmanager
async def _lifespan(_app: FastAPI):
    try:
        await run_in_threadpool(ping)
    except Exception as exc:
        # Serve anyway; /health/ready reports the database as down until it answers.
        json_log("warning", "app.db_unreachable", env=settings.env, error=str(exc))
    else:
        json_log("info", "app.started", env=settings.env, version=settings.api_version)
    try:
        yield
    finally:
        close_pools()
        json_log("info", "app.stopped", env=settings.env)


app = FastAPI(title="Store POS API", version=settings.api_version, lifespan=_lifespan)


def _current_request_id(req: Request) -> str:
    return getattr(req.state, "request_id", "") or req.headers.get("x-request-id") or "startup"


def _error_content(code: str, detail: str, exc: Exception) -> dict:
    content = {"status": "error", "code": code, "detail": detail}
    if settings.exposes_errors:
        content["error"] = str(exc)
    return content


@app.exception_handler(PosError)
def _pos_error(req: Request, exc: PosError):
    if exc.status_code >= 500:
        json_log(
            "error",
            "http.request.pos_error",
            request_id=_current_request_id(req),
            path=req.url.path,
            code=exc.code,
            detail=exc.detail,
            cause=str(exc.__cause__) if exc.__cause__ else None,
        )
    content = exc.to_content()
    if exc.status_code >= 500 and exc.__cause__ is not None and settings.exposes_errors:
        content["error"] = str(exc.__cause__)
    return JSONResponse(status_code=exc.status_code, content=content)


# Constraint errors that escape a handler still get an actionable 4xx.
@app.exception_handler(pg_errors.UniqueViolation)
def _unique_violation(_req: Request, exc: Exception):
    return JSONResponse(status_code=409, content=_error_content("CONFLICT", "conflict", exc))


@app.exception_handler(pg_errors.ForeignKeyViolation)
def _foreign_key_violation(_req: Request, exc: Exception):
    return JSONResponse(status_code=400, content=_error_content("VALIDATION_ERROR", "invalid reference", exc))


@app.exception_handler(pg_errors.CheckViolation)
def _check_violation(_req: Request, exc: Exception):
    return JSONResponse(status_code=400, content=_error_content("VALIDATION_ERROR", "constraint violation", exc))


# Schema failures (wrong types, unparseable dates) are malformed input like any other.
@app.exception_handler(RequestValidationError)
def _request_validation_error(_req: Request, exc: RequestValidationError):
    content = {"status": "error", "code": "VALIDATION_ERROR", "detail": "validation failed"}
    if settings.exposes_errors:
        content["errors"] = jsonable_encoder(exc.errors())
    return JSONResponse(status_code=400, content=content)


@app.exception_handler(Exception)
def _unhandled_exception(req: Request, exc: Exception):
    rid = _current_request_id(req)
    json_log(
        "error",
        "http.request.unhandled",
        request_id=rid,
        method=req.method,
        path=req.url.path,
        error=str(exc),
    )
    content = _error_content("INTERNAL_ERROR", "internal error", exc)
    content["request_id"] = rid
    return JSONResponse(status_code=500, content=content)


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


@app.middleware("http")
async def _correlate_request(request: Request, call_next):
    rid = (request.headers.get("X-Request-Id") or "").strip() or uuid.uuid4().hex
    request.state.request_id = rid
    fields = {
        "request_id": rid,
        "method": request.method,
        "path": request.url.path,
        "client_ip": request.client.host if request.client else None,
    }
    started = time.perf_counter()
    status_code = 500
    try:
        response = await call_next(request)
        status_code = response.status_code
        response.headers["X-Request-Id"] = rid
        response.headers["X-Content-Type-Options"] = "nosniff"
        return response
    finally:
        if status_code >= 500:
            json_log("error", "http.request", status_code=status_code, duration_ms=_elapsed_ms(started), **fields)
        elif not fields["path"].startswith(_UNLOGGED_PATH_PREFIXES):
            json_log("info", "http.request", status_code=status_code, duration_ms=_elapsed_ms(started), **fields)


# Register UI runs on a different origin during development.
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(members_router)
app.include_router(passes_router)


def _db_health():
    try:
        ping()
        return True, None
    except Exception as exc:
        return False, str(exc)


@app.get("/health")
@app.get("/health/ready")
def health(req: Request):
    request_id = _current_request_id(req)
    ok, err = _db_health()
    content = {
        "status": "ok" if ok else "degraded",
        "env": settings.env,
        "db": "ok" if ok else "down",
        "service": "storepos-backend",
        "version": settings.api_version,
        "started_at": STARTED_AT_UTC.isoformat(),
        "request_id": request_id,
    }
    if not ok:
        if settings.exposes_errors:
            content["error"] = err
        return JSONResponse(status_code=503, content=content)
    return content


@app.get("/health/live")
def health_live(req: Request):
    return {
        "status": "ok",
        "env": settings.env,
        "service": "storepos-backend",
        "request_id": _current_request_id(req),
    }
