# backend/drill_converter/main.py
import asyncio
import os
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import Depends, FastAPI, File, Form, HTTPException, Request, UploadFile, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse
from pydantic import ValidationError

from . import __version__
from .config import Settings
from .db import make_engine
from .log import setup_logging
from .models import Conversion, ConversionCreate, Intensity
from .store import JobStore, MemoryJobStore, SQLJobStore
from .uploads import UploadRejected, check_mime_type, new_upload_path, save_upload_file
from .worker import RunnerRegistry


def build_store(settings: Settings) -> JobStore:
    if settings.store_backend == "memory":
        return MemoryJobStore()
    if settings.store_backend == "sqlite":
        return SQLJobStore(make_engine(settings.resolved_database_url()))
    raise ValueError(f"unknown store backend: {settings.store_backend!r}")


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_store(request: Request) -> JobStore:
    return request.app.state.store


def get_runners(request: Request) -> RunnerRegistry:
    return request.app.state.runners


def download_filename(conversion: Conversion) -> str:
    base_name = os.path.splitext(os.path.basename(conversion.original_filename))[0]
    return f"{base_name}_drill_{conversion.intensity.value}.mp3"


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or Settings.from_env()
    logger = setup_logging(settings.log_level, settings.log_file)

    # --- STORAGE ---
    os.makedirs(settings.upload_dir, exist_ok=True)
    store = build_store(settings)
    runners = RunnerRegistry(
        store,
        settings.upload_dir,
        total_steps=settings.total_steps,
        step_delay=settings.step_delay,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        os.makedirs(settings.upload_dir, exist_ok=True)
        logger.info("Storing uploads in %s (store=%s)", settings.upload_dir, settings.store_backend)
        yield
        await runners.shutdown()

    app = FastAPI(title="Drill Converter", version=__version__, lifespan=lifespan)
    app.state.settings = settings
    app.state.store = store
    app.state.runners = runners

    # --- CORS for development ---
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # open for dev; lock down in prod
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/healthz", include_in_schema=False)
    def healthz(store: JobStore = Depends(get_store)) -> dict:
        return {"status": "ok", "jobs": store.count()}

    @app.post("/api/upload", response_model=Conversion)
    async def upload_audio(
        audio: Optional[UploadFile] = File(default=None),
        intensity: str = Form(default="medium"),
        settings: Settings = Depends(get_settings),
        store: JobStore = Depends(get_store),
        runners: RunnerRegistry = Depends(get_runners),
    ):
        """
        Accept:
          - multipart field 'audio' -> UploadFile (mp3 / wav / m4a, up to 50MB)
          - form field 'intensity' -> soft | medium | heavy (default medium)
        Returns:
          - the pending conversion record; processing continues in the background
        """
        if audio is None or not audio.filename:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No file uploaded")

        input_path = None
        try:
            check_mime_type(audio.content_type or "")
            if audio.size is not None and audio.size > settings.max_upload_bytes:
                raise UploadRejected(
                    f"File too large. Maximum size is {settings.max_upload_bytes // (1024 * 1024)}MB."
                )
            try:
                chosen = Intensity(intensity or Intensity.MEDIUM.value)
            except ValueError:
                raise UploadRejected("Invalid intensity. Expected one of: soft, medium, heavy.") from None

            input_path = new_upload_path(settings.upload_dir)
            size = await save_upload_file(audio, input_path, settings.max_upload_bytes)

            fields = ConversionCreate(
                original_filename=audio.filename,
                original_file_path=input_path,
                intensity=chosen,
                metadata={"fileSize": size, "mimeType": audio.content_type},
            )
            conversion = store.create(fields)
            logger.info(
                "Created job_id=%s for file=%s intensity=%s bytes=%d",
                conversion.id,
                audio.filename,
                chosen.value,
                size,
            )

            runners.start(conversion.id)
            return conversion

        except UploadRejected as e:
            logger.info("Rejected upload file=%s: %s", audio.filename, e)
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
        except ValidationError as e:
            _discard(input_path)
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail={"message": "Invalid request data", "errors": e.errors(include_url=False)},
            )
        except HTTPException:
            raise
        except Exception:
            logger.exception("Upload error")
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Upload failed")

    @app.get("/api/conversions/{job_id}", response_model=Conversion)
    def get_conversion(job_id: str, store: JobStore = Depends(get_store)):
        try:
            conversion = store.get(job_id)
        except Exception:
            logger.exception("Get conversion error job_id=%s", job_id)
            raise HTTPException(status_code=500, detail="Failed to get conversion")
        if not conversion:
            raise HTTPException(status_code=404, detail="Conversion not found")
        return conversion

    @app.get("/api/conversions", response_model=List[Conversion])
    def list_conversions(store: JobStore = Depends(get_store)):
        try:
            return store.list_all()
        except Exception:
            logger.exception("Get conversions error")
            raise HTTPException(status_code=500, detail="Failed to get conversions")

    @app.post("/api/conversions/{job_id}/cancel", response_model=Conversion)
    async def cancel_conversion(
        job_id: str,
        store: JobStore = Depends(get_store),
        runners: RunnerRegistry = Depends(get_runners),
    ):
        if store.get(job_id) is None:
            raise HTTPException(status_code=404, detail="Conversion not found")

        task = runners.get_task(job_id)
        if task is None or not runners.cancel(job_id):
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Conversion is not running")

        await asyncio.wait({task})
        logger.info("Cancelled job_id=%s", job_id)
        return store.get(job_id)

    @app.get("/api/download/{job_id}")
    def download(job_id: str, store: JobStore = Depends(get_store)):
        try:
            conversion = store.get(job_id)
        except Exception:
            logger.exception("Download error job_id=%s", job_id)
            raise HTTPException(status_code=500, detail="Download failed")

        if not conversion or not conversion.converted_file_path:
            raise HTTPException(status_code=404, detail="File not found")

        if not os.path.exists(conversion.converted_file_path):
            logger.error("Converted file missing job_id=%s path=%s", job_id, conversion.converted_file_path)
            raise HTTPException(status_code=404, detail="File not found on disk")

        return FileResponse(
            path=conversion.converted_file_path,
            filename=download_filename(conversion),
            media_type="audio/mpeg",
        )

    return app


def _discard(path: Optional[str]):
    if path and os.path.exists(path):
        os.remove(path)


app = create_app()
