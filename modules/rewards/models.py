from pydantic import BaseModel

class AddPoints(BaseModel):
    user_id: str
    action_type: str
