from pydantic import BaseModel, ConfigDict, Field
from typing import Optional

class ChatMessageCreate(BaseModel):
    model_config = ConfigDict(coerce_numbers_to_str=True)

    incident_id: str
    message: str = Field(min_length=1, max_length=2000)

class RelayMessage(BaseModel):
    """Payload of a relay ``send-message`` event. Numeric ids are accepted as strings."""
    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True)

    incident_id: str = Field(alias="incidentId")
    user_id: Optional[str] = Field(default=None, alias="userId")
    message: str = Field(min_length=1, max_length=2000)

class ChatMessage(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: Optional[str] = None
    incident_id: str = Field(alias="incidentId")
    user_id: str = Field(alias="userId")
    username: Optional[str] = None
    message: str
    timestamp: str

    @classmethod
    def from_row(cls, row: dict, fallback_username: Optional[str] = None) -> "ChatMessage":
        """Build the wire shape from a stored chat_messages row."""
        return cls(
            id=str(row["id"]),
            incident_id=str(row["incident_id"]),
            user_id=str(row["user_id"]),
            username=row.get("username") or fallback_username,
            message=row["message"],
            timestamp=str(row["created_at"]),
        )
