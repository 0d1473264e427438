from fastapi import APIRouter, Depends, Query
from .models import IncidentCreate
from .manager import create_incident, get_nearby_incidents, get_incident
from .utils import DEFAULT_NEARBY_RADIUS_KM
from modules.auth.manager import get_current_user

router = APIRouter()

@router.post("")
@router.post("/", include_in_schema=False)
async def report(incident: IncidentCreate, current_user: dict = Depends(get_current_user)):
    return await create_incident(incident, current_user)

@router.get("/nearby")
async def nearby(
    latitude: float = Query(..., ge=-90, le=90),
    longitude: float = Query(..., ge=-180, le=180),
    radius: float = Query(DEFAULT_NEARBY_RADIUS_KM, gt=0, le=500),
):
    return await get_nearby_incidents(latitude, longitude, radius)

@router.get("/{incident_id}")
async def get_single_incident(incident_id: str):
    return await get_incident(incident_id)
