"""Main FastAPI application and server startup."""

import asyncio
from typing import Optional

import structlog
import uvicorn
from fastapi import Depends, FastAPI, File, Form, HTTPException, Query, Request, UploadFile
from fastapi.responses import JSONResponse, Response

from ..config.settings import Settings
from ..errors import InputError, PipelineError
from ..refs import LocalRef, content_type_for, instrumental_from_payload, parse_reference
from ..runtime import Runtime, build_runtime
from ..telemetry import configure_logging, is_configured
from .schemas import (
    CacheStatsResponse,
    CombineRequest,
    CombineResponse,
    ConvertRequest,
    ConvertResponse,
    HealthResponse,
    ProcessResponse,
    SeparateRequest,
    SeparateResponse,
    SweepResponse,
    UploadResponse,
)

logger = structlog.get_logger(__name__)

app = FastAPI(
    title="Villager Voice API",
    description="Separate, convert and remix uploaded audio with cached stages",
    version="0.3.0",
)

# Global runtime (initialized on startup or injected by tests)
_runtime: Optional[Runtime] = None


def set_runtime(runtime: Optional[Runtime]) -> None:
    """Install the runtime used by request handlers."""
    global _runtime
    _runtime = runtime


def get_runtime() -> Runtime:
    """Dependency to get the runtime."""
    if _runtime is None:
        raise HTTPException(status_code=503, detail="Pipeline not initialized")
    return _runtime


@app.on_event("startup")
async def startup_event():
    """Build components and start periodic reclamation."""
    global _runtime

    if _runtime is None:
        settings = Settings.from_env()
        if not is_configured():
            configure_logging(settings.logging.level, settings.logging.json_output)
        _runtime = build_runtime(settings)

    await _runtime.reclaimer.start()


@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup on shutdown."""
    if _runtime is not None:
        await _runtime.aclose()


@app.exception_handler(PipelineError)
async def pipeline_error_handler(request: Request, exc: PipelineError):
    logger.warning(
        "request_failed",
        path=request.url.path,
        error_type=type(exc).__name__,
        error=exc.message,
    )
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.middleware("http")
async def opportunistic_sweep(request: Request, call_next):
    """Give the reclaimer a chance to run once per inbound request."""
    if _runtime is not None:
        await asyncio.to_thread(_runtime.reclaimer.maybe_run)
    return await call_next(request)


async def _read_upload(audio: Optional[UploadFile], runtime: Runtime) -> bytes:
    """Apply upload size/type limits before any stage runs."""
    if audio is None:
        raise InputError("No audio file provided")

    limits = runtime.settings.upload
    content_type = (audio.content_type or "application/octet-stream").lower()
    if not content_type.startswith(limits.allowed_prefixes):
        raise InputError(f"Unsupported content type: {content_type}", status_code=415)

    data = await audio.read(limits.max_upload_bytes + 1)
    if len(data) > limits.max_upload_bytes:
        raise InputError(
            f"File too large (max {limits.max_upload_bytes} bytes)", status_code=413
        )
    if not data:
        raise InputError("Uploaded audio file is empty")
    return data


@app.get("/health", response_model=HealthResponse)
async def health():
    """Health check endpoint."""
    return HealthResponse(
        status="ok",
        components={
            "runtime": _runtime is not None,
            "reclaimer": _runtime is not None and _runtime.reclaimer.running,
        },
    )


@app.post("/api/upload-audio", response_model=UploadResponse)
async def upload_audio(
    audio: Optional[UploadFile] = File(default=None),
    runtime: Runtime = Depends(get_runtime),
):
    """Store an upload under its content hash (Ingest stage)."""
    data = await _read_upload(audio, runtime)
    logger.info("upload_received", name=audio.filename, size=len(data))

    result = await runtime.orchestrator.ingest(data, audio.filename or "upload.wav")
    return UploadResponse(**result.to_dict())


@app.get("/api/audio")
async def get_audio(
    file: Optional[str] = Query(default=None),
    runtime: Runtime = Depends(get_runtime),
):
    """Serve an artifact; the token is reduced to its base name first."""
    if not file:
        raise InputError("File parameter missing")

    ref = parse_reference(file)
    if not isinstance(ref, LocalRef):
        raise InputError("File parameter must name a local artifact")

    data = await asyncio.to_thread(runtime.store.get, ref.filename)
    return Response(
        content=data,
        media_type=content_type_for(ref.filename),
        headers={
            "Access-Control-Allow-Origin": "*",
            "Cache-Control": "no-store",
        },
    )


@app.post("/api/separate-vocals", response_model=SeparateResponse)
async def separate_vocals(
    request: SeparateRequest,
    runtime: Runtime = Depends(get_runtime),
):
    """Split an ingested upload into vocals and instrumental."""
    result = await runtime.orchestrator.separate(parse_reference(request.filename))
    return SeparateResponse(**result.to_dict())


@app.post("/api/convert-to-villager", response_model=ConvertResponse)
async def convert_to_villager(
    request: ConvertRequest,
    runtime: Runtime = Depends(get_runtime),
):
    """Run voice conversion on vocals or a raw upload."""
    result = await runtime.orchestrator.convert(parse_reference(request.audioUrl))
    return ConvertResponse(**result.to_dict())


@app.post("/api/combine-audio", response_model=CombineResponse)
async def combine_audio(
    request: CombineRequest,
    runtime: Runtime = Depends(get_runtime),
):
    """Mix converted vocals with the instrumental stem(s)."""
    vocals = parse_reference(request.vocalsUrl)
    instrumental = (
        instrumental_from_payload(request.instrumentalUrl)
        if request.instrumentalUrl is not None
        else None
    )
    result = await runtime.orchestrator.combine(vocals, instrumental)
    return CombineResponse(**result.to_dict())


@app.post("/api/process", response_model=ProcessResponse)
async def process(
    audio: Optional[UploadFile] = File(default=None),
    separate: bool = Form(default=True),
    runtime: Runtime = Depends(get_runtime),
):
    """Run the whole chain for one upload."""
    data = await _read_upload(audio, runtime)
    result = await runtime.orchestrator.process(data, audio.filename or "upload.wav", separate=separate)

    body = result.to_dict()
    return ProcessResponse(
        outputUrl=body["outputUrl"],
        path=body["path"],
        timings=body["timings"],
        separation=body["separation"],
        conversion=body["conversion"],
        combined=body["combined"],
    )


@app.post("/admin/sweep", response_model=SweepResponse)
async def sweep(runtime: Runtime = Depends(get_runtime)):
    """Force a reclamation pass now."""
    report = await asyncio.to_thread(runtime.reclaimer.run_once)
    return SweepResponse(**report.to_dict())


@app.get("/admin/cache/stats", response_model=CacheStatsResponse)
async def cache_stats(runtime: Runtime = Depends(get_runtime)):
    stats = runtime.cache.get_stats()
    return CacheStatsResponse(artifacts=len(runtime.store.list()), **stats)


def main(host: str = "0.0.0.0", port: int = 8000):
    """Run the API server."""
    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    main()
