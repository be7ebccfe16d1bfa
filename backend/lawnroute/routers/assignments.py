"""
Assignments API Router
Customer prioritization, zip clustering and day planning
"""

from datetime import date
from fastapi import APIRouter, Depends, Query
from motor.motor_asyncio import AsyncIOMotorDatabase
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field

from lawnroute.database import get_database
from lawnroute.middleware.auth import get_current_business_id, require_planner
from lawnroute.models.crew import CrewAssignment, SERVICE_TYPES
from lawnroute.services.crew_assignment import CrewAssignmentService, validate_crew_assignment
from lawnroute.services.prioritization import PrioritizationService
from lawnroute.utils.exceptions import ValidationException
from lawnroute.utils.security import TokenData

router = APIRouter()


class PlanDayRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    plan_date: date = Field(alias="date")
    create_schedules: bool = False
    start_lat: Optional[float] = Field(None, ge=-90, le=90)
    start_lng: Optional[float] = Field(None, ge=-180, le=180)
    respect_priority: bool = False


@router.get(
    "/priorities",
    response_model=dict,
    summary="Rank customers available for a date"
)
async def get_priorities(
    target_date: date = Query(..., alias="date", description="Date in YYYY-MM-DD format"),
    include_not_due: bool = Query(False, description="Include customers that are not due yet"),
    business_id: str = Depends(get_current_business_id),
    db: AsyncIOMotorDatabase = Depends(get_database)
):
    """Active customers without a slot on the date, highest score first"""
    ranked = await PrioritizationService(db).get_available_customers(
        business_id, target_date, include_not_due=include_not_due
    )
    return {
        "success": True,
        "data": [assessment.to_dict() for assessment in ranked],
        "count": len(ranked)
    }


@router.get(
    "/zip-clusters",
    response_model=dict,
    summary="Group due customers by zip code"
)
async def get_zip_clusters(
    target_date: date = Query(..., alias="date", description="Date in YYYY-MM-DD format"),
    business_id: str = Depends(get_current_business_id),
    db: AsyncIOMotorDatabase = Depends(get_database)
):
    clusters = await CrewAssignmentService(db).get_zip_clusters(business_id, target_date)
    return {
        "success": True,
        "data": [cluster.to_dict() for cluster in clusters],
        "count": len(clusters)
    }


@router.post(
    "/plan",
    response_model=dict,
    summary="Plan a working day across crews"
)
async def plan_day(
    request: PlanDayRequest,
    principal: TokenData = Depends(require_planner),
    business_id: str = Depends(get_current_business_id),
    db: AsyncIOMotorDatabase = Depends(get_database)
):
    """
    Rank due customers, split them by zip across crews and sequence each
    crew's stops. Set create_schedules to store one schedule per crew.
    """
    start_location = None
    if request.start_lat is not None and request.start_lng is not None:
        start_location = (request.start_lat, request.start_lng)

    plan = await CrewAssignmentService(db).plan_day(
        business_id,
        request.plan_date,
        create_schedules=request.create_schedules,
        start_location=start_location,
        respect_priority=request.respect_priority
    )
    return {
        "success": True,
        "data": plan
    }


@router.post(
    "/validate",
    response_model=dict,
    summary="Validate a crew assignment"
)
async def validate_assignment(
    assignment: CrewAssignment,
    business_id: str = Depends(get_current_business_id)
):
    errors = validate_crew_assignment(assignment)
    if errors:
        raise ValidationException(errors)

    return {
        "success": True,
        "data": {"valid": True, "service_types": SERVICE_TYPES}
    }
