"""
Progress API Router
Live route progress, crew positions and stop completion
"""

from fastapi import APIRouter, Depends, Query
from motor.motor_asyncio import AsyncIOMotorDatabase
from typing import Optional, List
from pydantic import BaseModel, Field

from lawnroute.database import get_database
from lawnroute.middleware.auth import get_current_business_id, require_crew_member
from lawnroute.models.common import DATE_PATTERN
from lawnroute.services.progress_tracker import ProgressTracker
from lawnroute.utils.security import TokenData

router = APIRouter()


class CrewLocationUpdate(BaseModel):
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)
    employee_count: int = Field(1, ge=0)


class EmployeePosition(BaseModel):
    employee_id: str
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)


class EmployeePositionsUpdate(BaseModel):
    positions: List[EmployeePosition]


@router.get(
    "",
    response_model=dict,
    summary="Get progress for every crew on a date"
)
async def get_progress(
    date: Optional[str] = Query(None, pattern=DATE_PATTERN, description="Defaults to today"),
    business_id: str = Depends(get_current_business_id),
    db: AsyncIOMotorDatabase = Depends(get_database)
):
    progress = await ProgressTracker(db).get_progress(business_id, date)
    return {
        "success": True,
        "data": [p.model_dump(mode="json") for p in progress],
        "count": len(progress)
    }


@router.get(
    "/summary",
    response_model=dict,
    summary="Get the dashboard progress summary"
)
async def get_progress_summary(
    date: Optional[str] = Query(None, pattern=DATE_PATTERN, description="Defaults to today"),
    business_id: str = Depends(get_current_business_id),
    db: AsyncIOMotorDatabase = Depends(get_database)
):
    summary = await ProgressTracker(db).get_summary(business_id, date)
    return {
        "success": True,
        "data": summary.model_dump()
    }


@router.get(
    "/crews/{crew_id}",
    response_model=dict,
    summary="Get one crew's progress"
)
async def get_crew_progress(
    crew_id: str,
    date: Optional[str] = Query(None, pattern=DATE_PATTERN, description="Defaults to today"),
    business_id: str = Depends(get_current_business_id),
    db: AsyncIOMotorDatabase = Depends(get_database)
):
    progress = await ProgressTracker(db).get_crew_progress(business_id, crew_id, date)
    return {
        "success": True,
        "data": progress.model_dump(mode="json")
    }


@router.put(
    "/crews/{crew_id}/location",
    response_model=dict,
    summary="Report a crew's position"
)
async def update_crew_location(
    crew_id: str,
    update: CrewLocationUpdate,
    principal: TokenData = Depends(require_crew_member),
    business_id: str = Depends(get_current_business_id),
    db: AsyncIOMotorDatabase = Depends(get_database)
):
    position = await ProgressTracker(db).update_crew_location(
        business_id, crew_id, update.lat, update.lng, update.employee_count
    )
    return {
        "success": True,
        "data": position.model_dump(mode="json")
    }


@router.put(
    "/crews/{crew_id}/employee-positions",
    response_model=dict,
    summary="Report employee positions for a crew"
)
async def update_employee_positions(
    crew_id: str,
    update: EmployeePositionsUpdate,
    principal: TokenData = Depends(require_crew_member),
    business_id: str = Depends(get_current_business_id),
    db: AsyncIOMotorDatabase = Depends(get_database)
):
    """The largest group of employees standing together becomes the crew position"""
    position = await ProgressTracker(db).update_employee_positions(
        business_id,
        crew_id,
        [(p.employee_id, p.lat, p.lng) for p in update.positions]
    )
    return {
        "success": True,
        "data": position.model_dump(mode="json")
    }


@router.post(
    "/routes/{route_id}/stops/{customer_id}/complete",
    response_model=dict,
    summary="Mark a stop completed"
)
async def complete_stop(
    route_id: str,
    customer_id: str,
    principal: TokenData = Depends(require_crew_member),
    business_id: str = Depends(get_current_business_id),
    db: AsyncIOMotorDatabase = Depends(get_database)
):
    progress = await ProgressTracker(db).mark_stop_completed(business_id, route_id, customer_id)
    return {
        "success": True,
        "data": progress.model_dump(mode="json")
    }


@router.delete(
    "/routes/{route_id}/stops/{customer_id}/complete",
    response_model=dict,
    summary="Reopen a completed stop"
)
async def reopen_stop(
    route_id: str,
    customer_id: str,
    principal: TokenData = Depends(require_crew_member),
    business_id: str = Depends(get_current_business_id),
    db: AsyncIOMotorDatabase = Depends(get_database)
):
    progress = await ProgressTracker(db).mark_stop_incomplete(business_id, route_id, customer_id)
    return {
        "success": True,
        "data": progress.model_dump(mode="json")
    }
