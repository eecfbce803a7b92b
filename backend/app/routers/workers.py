"""Router for the worker reference registry."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from .. import schemas
from ..database import get_db
from ..services import RegistryService

router = APIRouter()


@router.get("", response_model=List[schemas.WorkerRead])
def list_workers(db: Session = Depends(get_db)) -> List[schemas.WorkerRead]:
    return RegistryService.list_workers(db)


@router.get("/{worker_id}", response_model=schemas.WorkerRead)
def get_worker(worker_id: str, db: Session = Depends(get_db)) -> schemas.WorkerRead:
    """Retrieve a single worker by its external identifier."""
    worker = RegistryService.get_worker(db, worker_id)
    if worker is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Worker not found")
    return worker
