from enum import Enum

from pydantic import BaseModel, Field, field_validator


class WidgetPosition(str, Enum):
    BOTTOM_RIGHT = "bottom-right"
    BOTTOM_LEFT = "bottom-left"


# ===========================================
# Embed options (accepts the JS option names)
# ===========================================

class WidgetConfig(BaseModel):
    api_url: str = Field(alias="apiUrl")
    tenant_id: str = Field(alias="tenantId")
    position: WidgetPosition = WidgetPosition.BOTTOM_RIGHT
    primary_color: str = Field("#4F46E5", alias="primaryColor", pattern=r"^#[0-9A-Fa-f]{6}$")
    title: str = "Chat with us"
    subtitle: str = "We typically reply instantly"
    welcome_message: str = Field("Hi! How can I help you today?", alias="welcomeMessage")

    class Config:
        populate_by_name = True

    @field_validator("api_url")
    @classmethod
    def _check_api_url(cls, value: str) -> str:
        value = (value or "").strip().rstrip("/")
        if not value:
            raise ValueError("apiUrl is required")
        if not value.startswith(("http://", "https://")):
            raise ValueError("apiUrl must be an http(s) origin")
        return value

    @field_validator("tenant_id")
    @classmethod
    def _check_tenant_id(cls, value: str) -> str:
        value = (value or "").strip()
        if not value:
            raise ValueError("tenantId is required")
        return value
