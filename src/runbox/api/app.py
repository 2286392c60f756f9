from __future__ import annotations
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from ..errors import InvalidInput, NotFound
from ..logging import setup_logging
from ..runner.languages import supported_languages
from ..services.scheduler import Scheduler
from ..settings import Settings, load_settings


# --------- Schemas ---------
class SubmitReq(BaseModel):
    language: Optional[str] = None
    code: Optional[str] = None
    stdin: Optional[str] = ""

class SubmitRes(BaseModel):
    jobId: str

class StatusRes(BaseModel):
    jobId: str
    status: str
    output: str
    error: str
    exitCode: Optional[int] = None
    createdAt: datetime
    startedAt: Optional[datetime] = None
    finishedAt: Optional[datetime] = None


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or load_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(settings.log_level, settings.log_json)
        async with Scheduler.from_settings(settings) as scheduler:
            app.state.scheduler = scheduler
            yield

    app = FastAPI(title="runbox", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    def scheduler_of(request: Request) -> Scheduler:
        return request.app.state.scheduler

    # --------- Endpoints ---------
    # async on purpose: the scheduler queue belongs to the event loop

    @app.get("/")
    async def root():
        return {"message": "runbox engine running (local sandbox)"}

    @app.get("/health")
    async def health(request: Request):
        return {"ok": True, "pending": scheduler_of(request).pending_count}

    @app.get("/api/languages")
    async def languages():
        return {"languages": supported_languages()}

    @app.post("/api/submit", response_model=SubmitRes)
    async def submit(req: SubmitReq, request: Request):
        try:
            job_id = scheduler_of(request).submit(req.language or "", req.code or "", req.stdin or "")
        except InvalidInput as e:
            raise HTTPException(status_code=400, detail=str(e))
        return SubmitRes(jobId=job_id)

    @app.get("/api/status/{job_id}", response_model=StatusRes)
    async def status(job_id: str, request: Request):
        try:
            rec = scheduler_of(request).get_status(job_id)
        except NotFound:
            raise HTTPException(status_code=404, detail="Job not found")
        return StatusRes(
            jobId=rec.job_id,
            status=rec.status.value,
            output=rec.output,
            error=rec.error,
            exitCode=rec.exit_code,
            createdAt=rec.created_at,
            startedAt=rec.started_at,
            finishedAt=rec.finished_at,
        )

    return app
