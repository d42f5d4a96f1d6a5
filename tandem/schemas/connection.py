from pydantic import BaseModel
from typing import Optional

from tandem.services.connection_service import ConnectionState, RelationshipState

class ConnectionActionResponse(BaseModel):
    state: ConnectionState
    connection_id: Optional[int] = None

    model_config = {"from_attributes": True}

class ConnectionListResponse(BaseModel):
    connections: list[int] = []

class RequestListResponse(BaseModel):
    requests: list[int] = []

class RelationshipResponse(BaseModel):
    user_id: int
    state: RelationshipState
