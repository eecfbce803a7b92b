"""Router for the workstation reference registry."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from .. import schemas
from ..database import get_db
from ..services import RegistryService

router = APIRouter()


@router.get("", response_model=List[schemas.WorkstationRead])
def list_workstations(db: Session = Depends(get_db)) -> List[schemas.WorkstationRead]:
    return RegistryService.list_workstations(db)


@router.get("/{station_id}", response_model=schemas.WorkstationRead)
def get_workstation(station_id: str, db: Session = Depends(get_db)) -> schemas.WorkstationRead:
    station = RegistryService.get_workstation(db, station_id)
    if station is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Workstation not found")
    return station
