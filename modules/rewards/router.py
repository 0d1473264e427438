from fastapi import APIRouter, Depends
from .models import AddPoints
from .manager import add_points, get_user_points
from modules.auth.manager import get_current_user

router = APIRouter()

@router.post("/add-points")
async def add_points_endpoint(body: AddPoints, current_user: dict = Depends(get_current_user)):
    return await add_points(body, current_user)

@router.get("/user/{user_id}/points")
async def user_points(user_id: str, current_user: dict = Depends(get_current_user)):
    return await get_user_points(user_id)
