from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from config import BACKFILL_DAYS
from database import get_db
from dependencies import get_engine, get_snapshot_writer
from services.reconciliation_service import ReconciliationEngine
from services.snapshot_service import SnapshotWriter

router = APIRouter(prefix="/api/v1", tags=["Sync"])

@router.post("/sync/today")
def sync_today(engine: ReconciliationEngine = Depends(get_engine)):
    """Explicit save or app foreground."""
    return engine.sync_today().to_dict()

@router.post("/sync/provider-changed")
def provider_changed(engine: ReconciliationEngine = Depends(get_engine)):
    """The reminders provider reported an external change."""
    return engine.sync_today().to_dict()

@router.post("/sync/history")
def sync_history(
    days: int = Query(BACKFILL_DAYS, ge=1, le=BACKFILL_DAYS),
    engine: ReconciliationEngine = Depends(get_engine),
):
    return engine.sync_history(days=days).to_dict()

@router.get("/snapshot/index")
def snapshot_index(writer: SnapshotWriter = Depends(get_snapshot_writer)):
    index = writer.read_index()
    if index is None:
        raise HTTPException(status_code=404, detail="Snapshot not written yet")
    return index.model_dump(mode="json", by_alias=True)

@router.get("/snapshot/overview")
def snapshot_overview(writer: SnapshotWriter = Depends(get_snapshot_writer)):
    overview = writer.read_overview()
    if overview is None:
        raise HTTPException(status_code=404, detail="Snapshot not written yet")
    return overview.model_dump(mode="json", by_alias=True)

@router.post("/snapshot/rebuild")
def snapshot_rebuild(
    db: Session = Depends(get_db),
    writer: SnapshotWriter = Depends(get_snapshot_writer),
):
    if not writer.write_snapshot(db):
        raise HTTPException(status_code=500, detail="Snapshot write failed")
    return {"status": "success"}

@router.get("/snapshot/{habit_id}")
def snapshot_habit(habit_id: str, writer: SnapshotWriter = Depends(get_snapshot_writer)):
    payload = writer.read_today(habit_id)
    if payload is None:
        raise HTTPException(status_code=404, detail="No snapshot for this habit")
    return payload.model_dump(mode="json", by_alias=True)
