from datetime import datetime
from typing import List, Literal

from pydantic import BaseModel, Field


class ServerStatusRequest(BaseModel):
    identifier: str = Field(..., description="Panel identifier of the server (8 alphanumerics)")


class ServerResources(BaseModel):
    memory_bytes: int = 0
    memory_limit_bytes: int = 0
    cpu_absolute: float = 0
    cpu_limit: float = 0
    disk_bytes: int = 0
    disk_limit_bytes: int = 0
    network_rx_bytes: int = 0
    network_tx_bytes: int = 0
    uptime: int = Field(0, description="milliseconds")


class ServerStatusResponse(BaseModel):
    current_state: Literal["running", "starting", "stopping", "offline", "stopped", "unknown"]
    is_suspended: bool
    server_name: str
    resources: ServerResources


ServiceHealth = Literal["operational", "degraded", "partial", "down", "unknown"]


class PublicServiceStatus(BaseModel):
    name: str
    status: ServiceHealth


class NodeStatus(BaseModel):
    id: int
    name: str
    location: str
    status: Literal["operational", "down", "maintenance", "unknown"]
    memory_used: int = 0
    memory_total: int = 0
    disk_used: int = 0
    disk_total: int = 0


class ServiceStatusResponse(BaseModel):
    services: List[PublicServiceStatus]
    nodes: List[NodeStatus]
    overall_status: ServiceHealth
    last_updated: datetime
