from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from typing import Optional
from sqlalchemy.orm import Session

from database import get_db
from dependencies import get_engine
from providers import BaseReminderProvider, ProviderError, get_provider
from services.habit_service import HabitService
from services.identity_service import StampError
from services.link_service import LinkService, stored_keys
from services.reconciliation_service import ReconciliationEngine

router = APIRouter(prefix="/api/v1/habits", tags=["Habits"])

class HabitCreate(BaseModel):
    name: str

class HabitUpdate(BaseModel):
    name: Optional[str] = None

class LinkCreate(BaseModel):
    reminder_id: str
    is_required: Optional[bool] = True

class LinkUpdate(BaseModel):
    is_required: Optional[bool] = None
    title: Optional[str] = None


def _habit_out(h) -> dict:
    return {"id": h.id, "name": h.name, "created_at": h.created_at.isoformat() if h.created_at else None}

def _link_out(link) -> dict:
    return {
        "id": link.id,
        "habit_id": link.habit_id,
        "title": link.title,
        "is_required": link.is_required,
        "identity_keys": stored_keys(link),
    }

@router.get("")
def list_habits(db: Session = Depends(get_db)):
    return [
        {**row, "habit": _habit_out(row["habit"])}
        for row in HabitService.get_all(db)
    ]

@router.post("")
def create_habit(habit_data: HabitCreate, db: Session = Depends(get_db)):
    h = HabitService.create(db, habit_data.model_dump())
    if not h:
        raise HTTPException(status_code=500, detail="Could not create habit")
    return {"status": "success", "data": _habit_out(h)}

@router.get("/streaks")
def habit_streaks(db: Session = Depends(get_db)):
    return HabitService.get_streaks(db)

@router.put("/{habit_id}")
def update_habit(habit_id: str, habit_data: HabitUpdate, db: Session = Depends(get_db)):
    if not HabitService.get_by_id(db, habit_id):
        raise HTTPException(status_code=404, detail="Habit not found")
    h = HabitService.update(db, habit_id, habit_data.model_dump(exclude_unset=True))
    if not h:
        raise HTTPException(status_code=500, detail="Could not update habit")
    return {"status": "success", "data": _habit_out(h)}

@router.delete("/{habit_id}")
def delete_habit(habit_id: str, db: Session = Depends(get_db)):
    if not HabitService.delete(db, habit_id):
        raise HTTPException(status_code=404, detail="Habit not found")
    return {"status": "success"}

@router.get("/{habit_id}/history")
def habit_history(habit_id: str, days: int = 30, db: Session = Depends(get_db)):
    if not HabitService.get_by_id(db, habit_id):
        raise HTTPException(status_code=404, detail="Habit not found")
    return HabitService.get_history(db, habit_id, days=days)

# --- Reminder links ---

@router.get("/{habit_id}/links")
def list_links(habit_id: str, db: Session = Depends(get_db)):
    if not HabitService.get_by_id(db, habit_id):
        raise HTTPException(status_code=404, detail="Habit not found")
    return [_link_out(l) for l in LinkService.get_all(db, habit_id)]

@router.post("/{habit_id}/links")
def attach_link(
    habit_id: str,
    link_data: LinkCreate,
    db: Session = Depends(get_db),
    provider: BaseReminderProvider = Depends(get_provider),
    engine: ReconciliationEngine = Depends(get_engine),
):
    try:
        item = provider.get_item(link_data.reminder_id)
    except ProviderError as e:
        raise HTTPException(status_code=503, detail=str(e))
    if not item:
        raise HTTPException(status_code=404, detail="Reminder not found")

    try:
        link = LinkService.attach(db, provider, habit_id, item, is_required=bool(link_data.is_required))
    except StampError as e:
        raise HTTPException(status_code=502, detail=str(e))
    if not link:
        raise HTTPException(status_code=404, detail="Habit not found")

    report = engine.sync_today()
    return {"status": "success", "data": _link_out(link), "sync": report.to_dict()}

@router.patch("/links/{link_id}")
def update_link(
    link_id: int,
    link_data: LinkUpdate,
    db: Session = Depends(get_db),
    engine: ReconciliationEngine = Depends(get_engine),
):
    if not LinkService.get_by_id(db, link_id):
        raise HTTPException(status_code=404, detail="Link not found")
    link = LinkService.update(db, link_id, link_data.model_dump(exclude_unset=True))
    if not link:
        raise HTTPException(status_code=500, detail="Could not update link")
    report = engine.sync_today()
    return {"status": "success", "data": _link_out(link), "sync": report.to_dict()}

@router.delete("/links/{link_id}")
def delete_link(
    link_id: int,
    db: Session = Depends(get_db),
    engine: ReconciliationEngine = Depends(get_engine),
):
    if not LinkService.get_by_id(db, link_id):
        raise HTTPException(status_code=404, detail="Link not found")
    if not LinkService.delete(db, link_id):
        raise HTTPException(status_code=500, detail="Could not delete link")
    report = engine.sync_today()
    return {"status": "success", "sync": report.to_dict()}
