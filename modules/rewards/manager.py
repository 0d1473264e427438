import logging
from uuid import uuid4
from .models import AddPoints
from .utils import points_for
from modules.shared.db import execute_query
from modules.shared.response import success_response, error_response

logger = logging.getLogger("rewards.manager")


async def add_points(body: AddPoints, current_user: dict) -> dict:
    """Record points for a rewarded action; the points table is server-side"""
    if str(body.user_id) != str(current_user["id"]) and current_user.get("role") != "admin":
        logger.warning(f"User {current_user['id']} tried to add points for {body.user_id}")
        return error_response("Unauthorized", 403)
    try:
        points = points_for(body.action_type)
    except ValueError as e:
        return error_response(str(e), 400)

    try:
        await execute_query(
            """
            INSERT INTO user_points (id, user_id, action_type, points, created_at)
            VALUES ($1, $2, $3, $4, NOW())
            """,
            (str(uuid4()), body.user_id, body.action_type, points)
        )
        total = await _total_points(body.user_id)
        logger.info(f"Added {points} points to user {body.user_id} for {body.action_type}")
        return success_response({
            "user_id": body.user_id,
            "action_type": body.action_type,
            "points": points,
            "total_points": total,
        }, "Points added successfully")
    except Exception as e:
        logger.exception("Error adding points")
        return error_response(str(e), 500)


async def _total_points(user_id: str) -> int:
    total = await execute_query(
        "SELECT COALESCE(SUM(points), 0) FROM user_points WHERE user_id = $1",
        (user_id,),
        fetch_value=True
    )
    return int(total or 0)


async def get_user_points(user_id: str) -> dict:
    try:
        return success_response({"user_id": user_id, "total_points": await _total_points(user_id)})
    except Exception as e:
        logger.exception("Error retrieving points")
        return error_response(str(e), 500)
