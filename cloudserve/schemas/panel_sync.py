from typing import List

from pydantic import BaseModel, Field


class PanelSyncResults(BaseModel):
    imported: int = 0
    updated: int = 0
    skipped: int = 0
    deleted: int = 0
    no_user: int = 0
    no_product: int = 0
    no_plan: int = 0
    errors: List[str] = Field(default_factory=list)


class PanelSyncResponse(BaseModel):
    success: bool
    results: PanelSyncResults
    message: str
