"""
FastAPI app exposing the import pipeline: upload, decisions, commit, discard.
"""

from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import APIRouter, Depends, FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from config.logging import logger
from career_import.committer import ImportCommitter
from career_import.database import SessionLocal, get_db, init_db
from career_import.entity_store import SqlEntityStore
from career_import.errors import InvalidSessionState, ParseFailure, SessionNotFound
from career_import.orchestrator import ImportOrchestrator
from career_import.parsers import JsonExportParser
from career_import.records import (
    CommitResult,
    DecisionUpdate,
    ImportSession,
    RecordError,
    SessionStatus,
)
from career_import.staging import SqlKeyValueStore, StagingStore


# Request / response models
class UploadResponse(BaseModel):
    session: ImportSession
    stats: dict[str, Any]
    empty: bool = False
    commit_required: bool = False
    message: Optional[str] = None


class DecisionsRequest(BaseModel):
    session_id: str
    updates: list[DecisionUpdate] = Field(default_factory=list)


class DecisionsResponse(BaseModel):
    success: bool
    updated_count: int
    errors: list[RecordError] = Field(default_factory=list)


class SessionRequest(BaseModel):
    session_id: str


class DiscardResponse(BaseModel):
    session_id: str
    status: SessionStatus


class ErrorResponse(BaseModel):
    error: str
    detail: Optional[str] = None


def get_orchestrator(db: Session = Depends(get_db)) -> ImportOrchestrator:
    """Request-scoped orchestrator over the configured database."""
    entity_store = SqlEntityStore(db)
    staging = StagingStore(SqlKeyValueStore(SessionLocal), entity_store)
    return ImportOrchestrator(
        JsonExportParser(),
        staging,
        ImportCommitter(staging, entity_store),
    )


router = APIRouter(prefix="/import", tags=["import"])


@router.post(
    "/upload",
    response_model=UploadResponse,
    summary="Upload Export",
    responses={
        400: {"model": ErrorResponse, "description": "Export could not be parsed"},
    },
)
async def upload_export(
    workspace_id: str = Form(...),
    quick_import: bool = Form(False),
    file: UploadFile = File(..., description="Normalized JSON export"),
    orchestrator: ImportOrchestrator = Depends(get_orchestrator),
):
    """
    Parse an export and stage its records with suggested duplicate matches.

    With ``quick_import`` the response sets ``commit_required``; the caller
    commits next without reviewing decisions.
    """
    raw = await file.read()
    if not raw:
        raise HTTPException(status_code=400, detail="Empty file uploaded.")

    outcome = orchestrator.upload(workspace_id, raw, file.filename, quick_import)
    return UploadResponse(
        session=outcome.session,
        stats=outcome.session.stats(),
        empty=outcome.empty,
        commit_required=outcome.commit_required,
        message="Export contained no records." if outcome.empty else None,
    )


@router.get(
    "/sessions/{session_id}",
    response_model=ImportSession,
    responses={404: {"model": ErrorResponse}},
)
def get_session(
    session_id: str,
    orchestrator: ImportOrchestrator = Depends(get_orchestrator),
):
    return orchestrator.get_session(session_id)


@router.post(
    "/decisions",
    response_model=DecisionsResponse,
    responses={
        207: {"model": DecisionsResponse, "description": "Some updates were rejected"},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
)
def update_decisions(
    body: DecisionsRequest,
    orchestrator: ImportOrchestrator = Depends(get_orchestrator),
):
    result = orchestrator.decide(body.session_id, body.updates)
    response = DecisionsResponse(
        success=result.ok,
        updated_count=result.updated_count,
        errors=result.errors,
    )
    return JSONResponse(
        status_code=200 if result.ok else 207,
        content=response.model_dump(mode="json"),
    )


@router.post(
    "/commit",
    response_model=CommitResult,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
def commit_session(
    body: SessionRequest,
    orchestrator: ImportOrchestrator = Depends(get_orchestrator),
):
    return orchestrator.commit(body.session_id)


@router.post(
    "/discard",
    response_model=DiscardResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
def discard_session(
    body: SessionRequest,
    orchestrator: ImportOrchestrator = Depends(get_orchestrator),
):
    session = orchestrator.discard(body.session_id)
    return DiscardResponse(session_id=session.id, status=session.status)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    logger.info("Career import API starting up")
    yield
    logger.info("Career import API shutting down")


app = FastAPI(
    title="Career Import",
    description="Bulk import of career-history exports with duplicate detection and staged review",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(router)


@app.exception_handler(ParseFailure)
async def parse_failure_handler(request: Request, exc: ParseFailure):
    logger.warning(f"Parse failure: {exc.reason}")
    return JSONResponse(
        status_code=400,
        content={"error": "parse_failure", "detail": exc.reason},
    )


@app.exception_handler(SessionNotFound)
async def session_not_found_handler(request: Request, exc: SessionNotFound):
    return JSONResponse(
        status_code=404,
        content={"error": "session_not_found", "detail": str(exc)},
    )


@app.exception_handler(InvalidSessionState)
async def invalid_session_state_handler(request: Request, exc: InvalidSessionState):
    return JSONResponse(
        status_code=409,
        content={"error": "invalid_session_state", "detail": str(exc)},
    )


@app.get("/health", tags=["health"])
def health():
    return {"status": "ok"}
