# ecg_stream/api/fastapi_app.py
"""
FastAPI-based ECG ingestion and query service.

This service:
    - Accepts single ECG samples or batches from the device over HTTP.
    - Keeps the last 300 samples in the rolling window record.
    - Derives BPM + rhythm status after every ingestion.
    - Optionally consumes the same payloads from Kafka in a background thread.

Endpoints:
    - POST /submitEcgData   (alias POST /ecg)
    - GET  /getLatestEcg    (alias GET  /ecg/latest)
    - GET  /metrics/latest
    - GET  /health
"""

import sys
from pathlib import Path
from typing import Any, Dict

from fastapi import Depends, FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

# Project root on sys.path (so ecg_stream.* imports also work when run as a script)
ROOT_DIR = Path(__file__).resolve().parents[2]
if str(ROOT_DIR) not in sys.path:
    sys.path.append(str(ROOT_DIR))

from ecg_stream.config.settings import settings
from ecg_stream.ecg_metrics.service_ecg import GLOBAL_ECG_SERVICE, EcgService
from ecg_stream.errors import InvalidFormat, StoreUnavailable, ValidationError
from ecg_stream.streaming.ecg_consumer import start_consumer_background
from ecg_stream.utils.logging_utils import get_logger


app = FastAPI(
    title="ECG Realtime API",
    version="1.0.0",
    description="Stores a rolling window of ECG samples and exposes derived heart rate.",
)

# Devices and dashboards call from anywhere
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

logger = get_logger(module_name="ecg_api", logfile_name="api.log")


def get_service() -> EcgService:
    return GLOBAL_ECG_SERVICE


# --- Error mapping --- #

@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    logger.warning("%s %s rejected: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=400, content={"error": str(exc)})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": "Invalid request"})


@app.exception_handler(StoreUnavailable)
async def store_unavailable_handler(request: Request, exc: StoreUnavailable) -> JSONResponse:
    logger.error("%s %s failed: %s", request.method, request.url.path, exc, exc_info=exc)
    return JSONResponse(status_code=500, content={"error": str(exc) or "Internal Server Error"})


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("%s %s crashed", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"error": "Internal Server Error"})


# --- Startup: optional Kafka consumer thread --- #

@app.on_event("startup")
def startup_event() -> None:
    """
    Starts the Kafka consumer in the background when ECG_KAFKA_ENABLED is set.
    """
    logger.info(
        "ECG API starting up. store=%s window_key='%s' capacity=%d",
        settings.store.backend,
        settings.window.window_key,
        settings.window.capacity,
    )
    if settings.kafka.enabled:
        logger.info(
            "Kafka ingestion enabled: bootstrap='%s', topic='%s', group_id='%s'",
            settings.kafka.bootstrap_servers,
            settings.kafka.ecg_topic,
            settings.kafka.group_id,
        )
        start_consumer_background()


# --- Health check --- #

@app.get("/health")
def health() -> Dict[str, str]:
    return {"status": "ok"}


# --- Bare OPTIONS (browser preflights are answered by CORSMiddleware) --- #

@app.options("/submitEcgData")
@app.options("/ecg")
@app.options("/getLatestEcg")
@app.options("/ecg/latest")
def options_ok() -> Response:
    return Response(status_code=204)


# --- Ingestion --- #

@app.post("/submitEcgData")
@app.post("/ecg")
async def submit_ecg_data(
    request: Request,
    service: EcgService = Depends(get_service),
) -> Dict[str, Any]:
    """
    Store one sample or a batch and return the refreshed heart rate.

    Body:
        {"timestamp": "...", "ecg_value": 0.5, "status": "normal"}
        or a JSON array of such objects.
    """
    try:
        payload = await request.json()
    except ValueError:
        raise InvalidFormat("Request body is not valid JSON")

    # Store lock is blocking: keep it off the event loop
    result = await run_in_threadpool(service.ingest, payload)
    return result.to_response()


# --- Queries --- #

@app.get("/getLatestEcg")
@app.get("/ecg/latest")
def get_latest_ecg(service: EcgService = Depends(get_service)) -> Dict[str, Any]:
    """
    Current rolling window, oldest sample first.
    """
    results = service.query_window()
    logger.info("GET latest ECG -> %d samples", len(results))
    return {"success": True, "count": len(results), "data": results}


@app.get("/metrics/latest")
def get_latest_metrics(service: EcgService = Depends(get_service)) -> Dict[str, Any]:
    """
    Last published {timestamp, bpm, status} snapshot (null before first ingestion).
    """
    return {"success": True, "data": service.latest_metrics()}


# --- Local run entrypoint (uvicorn) --- #

if __name__ == "__main__":
    # Development:
    #   python -m uvicorn ecg_stream.api.fastapi_app:app --reload
    # or simply:
    #   python ecg_stream/api/fastapi_app.py
    import uvicorn

    uvicorn.run(
        "ecg_stream.api.fastapi_app:app",
        host=settings.api.host,
        port=settings.api.port,
        reload=True,
    )
