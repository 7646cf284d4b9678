import re
import uuid
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from cloudserve.services.game_presets import MINECRAFT_VERSION_PATTERN, is_supported_game

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def _check_uuid(value: str) -> str:
    try:
        uuid.UUID(value)
    except (ValueError, TypeError, AttributeError):
        raise ValueError("must be a UUID")
    return value


class ProvisionRequest(BaseModel):
    """Server-to-server request to create the panel server of an order"""
    model_config = {"populate_by_name": True}

    order_id: str = Field(..., alias="orderId")
    game_id: str = Field(..., alias="gameId")
    plan_name: str = Field(..., alias="planName")
    ram: int = Field(..., ge=512, le=65536, description="MB")
    cpu: int = Field(..., ge=10, le=1000, description="percent of one core")
    disk: int = Field(..., ge=1024, le=500000, description="MB")
    user_id: str = Field(..., alias="userId")
    user_email: str = Field(..., alias="userEmail", max_length=255)
    variant_id: Optional[str] = Field(None, alias="variantId")
    egg_id: Optional[int] = Field(None, alias="eggId")
    nest_id: Optional[int] = Field(None, alias="nestId")
    docker_image: Optional[str] = Field(None, alias="dockerImage")
    startup_command: Optional[str] = Field(None, alias="startupCommand")
    minecraft_version: Optional[str] = Field(None, alias="minecraftVersion")

    @field_validator("order_id", "user_id")
    @classmethod
    def _uuid_fields(cls, v):
        return _check_uuid(v)

    @field_validator("user_email")
    @classmethod
    def _email(cls, v):
        if not EMAIL_PATTERN.match(v):
            raise ValueError("invalid email address")
        return v

    @field_validator("minecraft_version")
    @classmethod
    def _version(cls, v):
        if v and not MINECRAFT_VERSION_PATTERN.match(v):
            raise ValueError("version must be 'latest' or X.Y[.Z]")
        return v or None

    @model_validator(mode="after")
    def _game_or_egg(self):
        if not is_supported_game(self.game_id) and not self.egg_id:
            raise ValueError(f"Unsupported game type: {self.game_id}")
        return self


class ProvisionResponse(BaseModel):
    model_config = {"populate_by_name": True}

    success: bool
    server_id: Optional[int] = Field(None, alias="serverId")
    server_identifier: Optional[str] = Field(None, alias="serverIdentifier")
    error: Optional[str] = None


class SuspendRequest(BaseModel):
    model_config = {"populate_by_name": True}

    order_id: str = Field(..., alias="orderId")
    action: Literal["suspend", "unsuspend"]

    @field_validator("order_id")
    @classmethod
    def _uuid_field(cls, v):
        return _check_uuid(v)


class SuspendResponse(BaseModel):
    success: bool
    error: Optional[str] = None
