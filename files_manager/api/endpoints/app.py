from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from ...db import models, schemas
from ...db.database import get_db
from ...services import file_service

router = APIRouter()


@router.get("/status", response_model=schemas.Status)
def get_status(request: Request):
    return {
        "redis": request.app.state.session_store.is_alive(),
        "db": request.app.state.database.is_alive(),
    }


@router.get("/stats", response_model=schemas.Stats)
def get_stats(db: Session = Depends(get_db)):
    return {
        "users": db.query(models.User).count(),
        "files": file_service.count_files(db),
    }
