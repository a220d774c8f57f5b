from datetime import datetime, timezone
import logging
import time as _time
from os import getenv

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from memory_garden.config import (
    get_data_dir,
    get_nemotron_api_url,
    get_nemotron_model,
    get_redis_url,
    is_classifier_configured,
    is_classifier_enabled,
)
from memory_garden.dependencies.services import Services, get_services
from memory_garden.routers import clusters as clusters_router
from memory_garden.routers import memories as memories_router
from memory_garden.routers import profile as profile_router
from memory_garden.schemas import OblivionResponse, TombstoneView


app = FastAPI(title="Memory Garden API", version="0.1.0")

logger = logging.getLogger("memory_garden.api")
if not logger.handlers:
    _handler = logging.StreamHandler()
    _handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s"))
    logger.addHandler(_handler)
_level_name = getenv("LOG_LEVEL", "INFO").upper()
_level = getattr(logging, _level_name, logging.INFO)
if not isinstance(_level, int):
    _level = logging.INFO
logger.setLevel(_level)
logger.propagate = False

# Root logger fallback so module loggers without handlers still emit
_root = logging.getLogger()
if not _root.handlers:
    _root_handler = logging.StreamHandler()
    _root_handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s"))
    _root.addHandler(_root_handler)
    _root.setLevel(_level)


@app.middleware("http")
async def _log_requests(request: Request, call_next):
    start = _time.perf_counter()
    path = request.url.path
    method = request.method
    client = request.client.host if request.client else "-"
    try:
        response = await call_next(request)
    except Exception as exc:  # pragma: no cover
        elapsed_ms = int((_time.perf_counter() - start) * 1000)
        logger.exception("[http] %s %s error=%s client=%s latency_ms=%s", method, path, exc.__class__.__name__, client, elapsed_ms)
        raise
    elapsed_ms = int((_time.perf_counter() - start) * 1000)
    logger.info("[http] %s %s status=%s client=%s latency_ms=%s", method, path, response.status_code, client, elapsed_ms)
    return response


_ui_origin = getenv("UI_ORIGIN")
allow_origins = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]
if _ui_origin and _ui_origin not in allow_origins:
    allow_origins.append(_ui_origin)

app.add_middleware(
    CORSMiddleware,
    allow_origins=allow_origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
def log_configuration() -> None:
    # The classifier degrades to heuristics without a key, so this never blocks startup
    logger.info(
        "[startup] data_dir=%s classifier_enabled=%s classifier_configured=%s model=%s base_url=%s redis=%s",
        get_data_dir(),
        is_classifier_enabled(),
        is_classifier_configured(),
        get_nemotron_model(),
        get_nemotron_api_url(),
        bool(get_redis_url()),
    )
    if is_classifier_enabled() and not is_classifier_configured():
        logger.warning("[startup] NEMOTRON_API_KEY not set; all analyses will be heuristic")


@app.get("/health")
def health() -> dict:
    return {"status": "ok", "time": datetime.now(timezone.utc).isoformat()}


@app.get("/v1/oblivion", response_model=OblivionResponse)
def list_oblivion(services: Services = Depends(get_services)) -> OblivionResponse:
    entries = [TombstoneView.from_tombstone(t) for t in services.repository.list_tombstones()]
    return OblivionResponse(entries=entries, total=len(entries))


app.include_router(memories_router.router)
app.include_router(clusters_router.router)
app.include_router(profile_router.router)
