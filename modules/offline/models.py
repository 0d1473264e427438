from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from modules.incidents.models import IncidentCreate

PENDING_SYNC = "pending_sync"


class LocalId(BaseModel):
    """Identifier minted on the device for a report the server has not seen."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["local"] = "local"
    value: str

    def __str__(self):
        return self.value


class RemoteId(BaseModel):
    """Identifier assigned by the Incident Service."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["remote"] = "remote"
    value: str

    def __str__(self):
        return self.value

    @classmethod
    def from_entity(cls, entity: Dict[str, Any]) -> "RemoteId":
        return cls(value=str(entity["id"]))


IncidentId = Annotated[Union[LocalId, RemoteId], Field(discriminator="kind")]


class PendingIncident(IncidentCreate):
    """An incident report waiting in the local queue for server acknowledgement."""
    local_id: LocalId
    created_at: datetime
    status: Literal["pending_sync"] = PENDING_SYNC

    def submission_payload(self) -> Dict[str, Any]:
        """The report as sent to the server: everything but the local id and status."""
        return self.model_dump(mode="json", exclude={"local_id", "status"})


class SyncResult(BaseModel):
    synced: int = 0
    failed: int = 0


class CachedIncidentSet(BaseModel):
    incidents: List[Dict[str, Any]] = Field(default_factory=list)
    last_refreshed: Optional[datetime] = None


class NearbyIncidents(BaseModel):
    """Incidents for the map, with where they came from."""
    incidents: List[Dict[str, Any]]
    from_cache: bool = False
    last_refreshed: Optional[datetime] = None


class ReportOutcome(BaseModel):
    """Result of the report-incident action: a server entity or a queued report."""
    incident_id: IncidentId
    queued: bool
    incident: Dict[str, Any]
