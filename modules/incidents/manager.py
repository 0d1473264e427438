import logging
from uuid import uuid4
from .models import IncidentCreate
from .utils import is_valid_uuid
from modules.shared.db import execute_query
from modules.shared.response import success_response, error_response
from modules.shared.utils import serialize_row, bounding_box

logger = logging.getLogger("incidents.manager")


async def create_incident(incident: IncidentCreate, current_user: dict) -> dict:
    """Create an incident reported by the current user and return the stored entity"""
    logger.info(f"User {current_user['id']} is reporting an incident: {incident.title!r}")
    try:
        incident_id = str(uuid4())
        query = """
        INSERT INTO incidents
        (id, title, description, latitude, longitude, severity, status, reported_by, created_at)
        VALUES ($1, $2, $3, $4, $5, $6, 'active', $7, NOW())
        RETURNING *
        """
        params = (
            incident_id,
            incident.title,
            incident.description,
            incident.latitude,
            incident.longitude,
            incident.severity,
            current_user['id'],
        )
        result = await execute_query(query, params, fetch_one=True)
        logger.info(f"Incident {incident_id} created")
        return success_response(serialize_row(result), "Incident reported successfully", status_code=201)
    except Exception as e:
        logger.exception("Error creating incident")
        return error_response(str(e), 500)


async def get_nearby_incidents(latitude: float, longitude: float, radius_km: float) -> dict:
    """Active incidents inside the bounding box around a point, most recent first"""
    logger.info(f"Fetching incidents within {radius_km}km of ({latitude}, {longitude})")
    try:
        min_lat, max_lat, min_lon, max_lon = bounding_box(latitude, longitude, radius_km)
        query = """
            SELECT i.*, u.username AS reporter_name
            FROM incidents i
            LEFT JOIN users u ON i.reported_by = u.id
            WHERE i.latitude BETWEEN $1 AND $2
              AND i.longitude BETWEEN $3 AND $4
              AND i.status = 'active'
            ORDER BY i.created_at DESC
        """
        results = await execute_query(query, (min_lat, max_lat, min_lon, max_lon))
        incidents = [serialize_row(r) for r in results]
        logger.info(f"Found {len(incidents)} nearby incidents")
        return success_response(incidents, "Nearby incidents retrieved successfully")
    except Exception as e:
        logger.exception("Error retrieving nearby incidents")
        return error_response(str(e), 500)


async def get_incident(incident_id: str) -> dict:
    """Get a single incident by ID"""
    if not is_valid_uuid(incident_id):
        logger.warning(f"Invalid incident_id format: {incident_id}")
        return error_response("Invalid incident ID format", 400)
    try:
        query = """
            SELECT i.*, u.username AS reporter_name
            FROM incidents i
            LEFT JOIN users u ON i.reported_by = u.id
            WHERE i.id = $1
        """
        result = await execute_query(query, (incident_id,), fetch_one=True)
        if not result:
            logger.warning(f"Incident {incident_id} not found")
            return error_response("Incident not found", 404)
        return success_response(serialize_row(result), "Incident retrieved successfully")
    except Exception as e:
        logger.exception("Error retrieving incident")
        return error_response(str(e), 500)
