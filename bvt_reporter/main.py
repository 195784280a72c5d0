"""
FastAPI Main Application - Message stream ingestion for concurrent runs
"""
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import Body, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ValidationError

from .components.lookup_tables import ProtocolViolationError
from .config import settings
from .delivery.client import AuthorizationError
from .models.events import Envelope
from .session import RunSession


app = FastAPI(
    title=settings.APP_NAME,
    description="Aggregates Cucumber message streams into execution reports",
    version="1.0.0"
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Session storage (in-memory, one RunSession per run)
sessions: Dict[str, Dict[str, Any]] = {}


# Request/Response Models
class CreateRunRequest(BaseModel):
    run_name: Optional[str] = None


class SessionResponse(BaseModel):
    session_id: str
    status: str
    message: str


def _get_session(session_id: str) -> Dict[str, Any]:
    if session_id not in sessions:
        raise HTTPException(status_code=404, detail="Run not found")
    return sessions[session_id]


# API Endpoints
@app.post("/api/runs", response_model=SessionResponse)
async def create_run(request: CreateRunRequest):
    """
    Open a new run.
    Envelopes for it are posted to /api/runs/{session_id}/events.
    """
    session_id = str(uuid.uuid4())[:8]
    sessions[session_id] = {
        "id": session_id,
        "status": "collecting",
        "created_at": datetime.now().isoformat(),
        "session": RunSession(settings, run_name=request.run_name),
        "error": None,
    }
    return SessionResponse(
        session_id=session_id,
        status="collecting",
        message="Run opened, waiting for events"
    )


@app.post("/api/runs/{session_id}/events")
async def post_events(session_id: str, events: List[Dict[str, Any]] = Body(...)):
    """
    Feed a batch of envelopes, in order, to a run.
    The run is finalized when the batch contains testRunFinished.
    """
    entry = _get_session(session_id)
    session: RunSession = entry["session"]

    try:
        envelopes = [Envelope.from_dict(event) for event in events]
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))

    try:
        for envelope in envelopes:
            verdict = await session.handle(envelope)
            if verdict is not None:
                entry["status"] = "finished"
                await session.aclose()
    except ProtocolViolationError as e:
        entry["status"] = "error"
        entry["error"] = str(e)
        raise HTTPException(status_code=409, detail=str(e))
    except AuthorizationError as e:
        entry["status"] = "error"
        entry["error"] = str(e)
        raise HTTPException(status_code=403, detail=str(e))

    return {
        "session_id": session_id,
        "status": entry["status"],
        "accepted": len(envelopes),
        "verdict": session.verdict.value if session.verdict else None,
    }


@app.get("/api/runs/{session_id}")
async def get_run(session_id: str):
    """
    Get run status and summary.
    """
    entry = _get_session(session_id)
    session: RunSession = entry["session"]
    return {
        "session_id": session_id,
        "status": entry["status"],
        "created_at": entry["created_at"],
        "error": entry["error"],
        "verdict": session.verdict.value if session.verdict else None,
        "exit_code": session.exit_code if session.finalized else None,
        "summary": session.summary().model_dump(mode="json"),
    }


@app.get("/api/runs/{session_id}/report")
async def get_report(session_id: str):
    """
    Get the aggregated report as sent to the collector.
    """
    entry = _get_session(session_id)
    return entry["session"].report.to_payload()


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "timestamp": datetime.now().isoformat()}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
