"""
Pipeline Models

Stages of the sales pipeline and the request/response shapes of the kanban board.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from ..clients.models import ClientResponse


class ClientStage(BaseModel):
    """
    A named step of the sales pipeline.

    Stored in the tenant-specific database.
    """

    stage_id: str
    tenant_id: str
    name: str
    position: int = Field(..., ge=1)
    is_final: bool = Field(default=False)
    created_at: datetime = Field(default_factory=datetime.utcnow)

    class Config:
        json_schema_extra = {
            "example": {
                "stage_id": "stage_4c1d9e0a7b2f",
                "tenant_id": "imobsol_20260223",
                "name": "Visita Agendada",
                "position": 3,
                "is_final": False,
            }
        }


class StageCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=50)
    position: Optional[int] = Field(default=None, ge=1, description="Appended at the end when omitted")
    is_final: bool = Field(default=False)


class StageUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=50)
    is_final: Optional[bool] = Field(default=None)


class StageOrderRequest(BaseModel):
    stage_ids: list[str] = Field(..., min_length=1, description="Every stage id, in the new order")


class PipelineColumn(BaseModel):
    stage: ClientStage
    clients: list[ClientResponse]


class PipelineBoardResponse(BaseModel):
    columns: list[PipelineColumn]
    total_clients: int


class MoveClientRequest(BaseModel):
    """
    Drag-and-drop move.

    ``over_id`` is whatever the client was dropped on: a stage id or the id of another client.
    """

    client_id: str
    over_id: str


class StageChangeRequest(BaseModel):
    stage_id: str


class MoveClientResponse(BaseModel):
    moved: bool
    client_id: str
    from_stage_id: Optional[str]
    to_stage_id: Optional[str]
    board: PipelineBoardResponse
