"""
carelog: Timeline API Server
============================

HTTP surface over TimelineService.

Endpoints:
- GET    /health
- GET    /api/v1/notes                         -> own notes
- POST   /api/v1/notes                         -> create note
- PUT    /api/v1/notes/{id}                    -> rename / change shared-id
- DELETE /api/v1/notes/{id}                    -> delete note and events
- GET    /api/v1/notes/{id}/events?month=YYYY-MM[&kind=]
- POST   /api/v1/notes/{id}/events             -> stamp an event
- PUT    /api/v1/notes/{id}/events/{ts}        -> edit note text, move in time
- DELETE /api/v1/notes/{id}/events/{ts}
- GET    /api/v1/notes/{id}/suggestions?kind=
- GET    /api/v1/notes/{id}/intervals?month=YYYY-MM
- GET    /api/v1/notes/{id}/diary?month=YYYY-MM[&kind=...]
- GET    /api/v1/notes/{id}/export.csv
- POST   /api/v1/notes/{id}/import             -> body: CSV text
- GET    /api/v1/subscriptions
- POST   /api/v1/subscriptions
- DELETE /api/v1/subscriptions/{shared_id}

Store failures answer 503; unknown notes 404.

Usage:
    uvicorn carelog.api.server:app --reload
"""
from contextlib import asynccontextmanager
from datetime import date, datetime
from typing import List, Optional
import logging

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel, Field

from ..config import CarelogConfig
from ..contracts.base import ErrorCode, NoteNotFoundError, StoreError
from ..contracts.events import NOTE_MAX_LENGTH, EventKind, EventRecord, Note
from ..preferences import AppPreferences
from ..service import TimelineService
from ..storage import create_key_value_store, create_timeline_store
from ..temporal.month_window import parse_month
from .mapper import (
    diary_to_dto, event_to_dto, intervals_to_dto, note_to_dto, subscription_to_dto
)


logger = logging.getLogger(__name__)

# =============================================================================
# INFRASTRUCTURE SETUP
# =============================================================================

service_instance: Optional[TimelineService] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the store and service on startup; release them on shutdown."""
    global service_instance

    config = CarelogConfig.from_env()
    logger.info(f"Initializing {config.store.backend_type} timeline store for owner {config.owner_id}")

    kv = create_key_value_store(config.store)
    store = create_timeline_store(
        config.store,
        operator_name=config.operator_name,
        tz=config.tz,
        kv=kv
    )
    service_instance = TimelineService(
        store,
        owner_id=config.owner_id,
        preferences=AppPreferences(kv),
        tz=config.tz
    )

    yield

    logger.info("Shutting down timeline store")
    await service_instance.close()
    service_instance = None


app = FastAPI(
    title="carelog API",
    version="0.3.0",
    description="Care timeline: stamped events, sleep intervals, diary and CSV exchange",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(NoteNotFoundError)
async def note_not_found_handler(request: Request, exc: NoteNotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc), "code": exc.code.name})


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError):
    logger.warning(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(status_code=503, content={"detail": str(exc), "code": exc.code.name})


# =============================================================================
# REQUEST MODELS
# =============================================================================

class NoteCreate(BaseModel):
    name: str = Field(min_length=1)
    shared_id: Optional[str] = None


class NoteUpdate(BaseModel):
    name: str = Field(min_length=1)
    shared_id: Optional[str] = None


class EventCreate(BaseModel):
    kind: str
    note: str = Field(default="", max_length=NOTE_MAX_LENGTH)
    timestamp: Optional[int] = None


class EventUpdate(BaseModel):
    note: str = Field(default="", max_length=NOTE_MAX_LENGTH)
    timestamp: Optional[int] = None


class SubscriptionCreate(BaseModel):
    shared_id: str = Field(min_length=1)


# =============================================================================
# HELPERS
# =============================================================================

def _service() -> TimelineService:
    if service_instance is None:
        raise HTTPException(status_code=503, detail="Service not initialized")
    return service_instance


async def _note(note_id: str) -> Note:
    note = await _service().find_note(note_id)
    if note is None:
        raise HTTPException(status_code=404, detail=f"Note {note_id} not found")
    return note


def _month(value: Optional[str]) -> date:
    if not value:
        return datetime.now(_service().tz).date()
    try:
        return parse_month(value)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


def _kind(value: Optional[str]) -> Optional[EventKind]:
    if value is None:
        return None
    try:
        return EventKind.from_identifier(value)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


# =============================================================================
# ENDPOINTS
# =============================================================================

@app.get("/health")
async def health_check():
    """System status."""
    if not service_instance:
        raise HTTPException(status_code=503, detail="Service not initialized")
    return {"status": "online", "owner_id": service_instance.owner_id}


@app.get("/api/v1/notes")
async def list_notes():
    notes = await _service().list_notes()
    return {"notes": [note_to_dto(n) for n in notes]}


@app.post("/api/v1/notes", status_code=201)
async def create_note(body: NoteCreate):
    note = await _service().create_note(body.name, body.shared_id)
    return note_to_dto(note)


@app.put("/api/v1/notes/{note_id}")
async def update_note(note_id: str, body: NoteUpdate):
    service = _service()
    note = Note(id=note_id, name=body.name, owner_id=service.owner_id, shared_id=body.shared_id)
    return note_to_dto(await service.update_note(note))


@app.delete("/api/v1/notes/{note_id}", status_code=204)
async def delete_note(note_id: str):
    service = _service()
    note = await _note(note_id)
    if note.owner_id != service.owner_id:
        raise HTTPException(status_code=403, detail="Only the owner can delete a note")
    await service.delete_note(note)


@app.get("/api/v1/notes/{note_id}/events")
async def list_events(note_id: str, month: Optional[str] = None, kind: Optional[str] = None):
    """Events of one month, newest first."""
    note = await _note(note_id)
    reference = _month(month)
    events = await _service().month_events(note, reference, _kind(kind))
    return {"month": f"{reference:%Y-%m}", "events": [event_to_dto(e) for e in events]}


@app.post("/api/v1/notes/{note_id}/events", status_code=201)
async def record_event(note_id: str, body: EventCreate):
    note = await _note(note_id)
    record = await _service().record(note, _kind(body.kind), body.note, body.timestamp)
    return event_to_dto(record)


@app.put("/api/v1/notes/{note_id}/events/{timestamp}")
async def edit_event(note_id: str, timestamp: int, body: EventUpdate):
    """Replace the note text; a new timestamp moves the event."""
    service = _service()
    note = await _note(note_id)
    event = await service.get_event(note, timestamp)
    if event is None:
        raise HTTPException(status_code=404, detail=f"No event at {timestamp}")
    record = await service.edit_event(note, event, body.note, body.timestamp)
    return event_to_dto(record)


@app.delete("/api/v1/notes/{note_id}/events/{timestamp}", status_code=204)
async def delete_event(note_id: str, timestamp: int):
    service = _service()
    note = await _note(note_id)
    event = await service.get_event(note, timestamp)
    if event is None:
        raise HTTPException(status_code=404, detail=f"No event at {timestamp}")
    await service.delete_event(note, event)


@app.get("/api/v1/notes/{note_id}/suggestions")
async def get_suggestions(note_id: str, kind: str):
    note = await _note(note_id)
    return {"suggestions": await _service().suggestions(note, _kind(kind))}


@app.get("/api/v1/notes/{note_id}/intervals")
async def get_intervals(note_id: str, month: Optional[str] = None):
    """Reconstructed sleep intervals grouped by day of month."""
    note = await _note(note_id)
    reference = _month(month)
    interval_map = await _service().month_intervals(note, reference)
    return {"month": f"{reference:%Y-%m}", "days": intervals_to_dto(interval_map)}


@app.get("/api/v1/notes/{note_id}/diary")
async def get_diary(
    note_id: str,
    month: Optional[str] = None,
    kind: Optional[List[str]] = Query(default=None)
):
    note = await _note(note_id)
    reference = _month(month)
    kinds = [_kind(k) for k in kind] if kind else None
    diary = await _service().month_diary(note, reference, kinds)
    return {"month": f"{reference:%Y-%m}", "days": diary_to_dto(diary)}


@app.get("/api/v1/notes/{note_id}/export.csv")
async def export_csv(note_id: str):
    note = await _note(note_id)
    text = await _service().export_csv_text(note)
    return PlainTextResponse(
        text,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{note.id}.csv"'}
    )


@app.post("/api/v1/notes/{note_id}/import")
async def import_csv(note_id: str, request: Request):
    """Import CSV sent as the raw request body."""
    note = await _note(note_id)
    raw = await request.body()
    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError:
        raise HTTPException(status_code=400, detail="CSV body must be UTF-8")

    result = await _service().import_csv_text(note, text)
    if result.is_success:
        return {"imported": result.value}

    error = result.error
    if error.code == ErrorCode.EMPTY_PAYLOAD:
        raise HTTPException(status_code=400, detail=error.message)
    return JSONResponse(
        status_code=503,
        content={
            "detail": error.message,
            "code": error.code.name,
            "imported": int(error.context_value("imported") or 0),
        }
    )


@app.get("/api/v1/subscriptions")
async def list_subscriptions():
    entries = await _service().subscriptions()
    return {"subscriptions": [subscription_to_dto(e) for e in entries]}


@app.post("/api/v1/subscriptions", status_code=201)
async def subscribe(body: SubscriptionCreate):
    entry = await _service().subscribe(body.shared_id)
    return subscription_to_dto(entry)


@app.delete("/api/v1/subscriptions/{shared_id}", status_code=204)
async def unsubscribe(shared_id: str):
    await _service().unsubscribe(shared_id)
