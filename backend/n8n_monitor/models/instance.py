"""Pydantic models for monitored n8n instances."""

from datetime import datetime

from pydantic import BaseModel, Field, field_validator

DEFAULT_CHECK_INTERVAL_MINS = 5

API_PATH = "/api/v1/"


class InstanceCreate(BaseModel):
    """Request model for registering an instance."""

    host: str = Field(..., min_length=1, description="Base URL, e.g. https://n8n.example.com")
    api_key: str = Field(..., min_length=1, description="n8n public API key")
    ignore_ssl_errors: bool = False
    check_interval_mins: int = Field(DEFAULT_CHECK_INTERVAL_MINS, ge=0)

    @field_validator("host")
    @classmethod
    def validate_host(cls, value: str) -> str:
        if not value.startswith(("http://", "https://")):
            raise ValueError("host must start with http:// or https://")
        return value.rstrip("/")


class InstanceUpdate(BaseModel):
    """Request model for updating an instance."""

    host: str | None = None
    api_key: str | None = None
    ignore_ssl_errors: bool | None = None
    check_interval_mins: int | None = Field(None, ge=0)

    @field_validator("host")
    @classmethod
    def validate_host(cls, value: str | None) -> str | None:
        if value is None:
            return value
        if not value.startswith(("http://", "https://")):
            raise ValueError("host must start with http:// or https://")
        return value.rstrip("/")


class Instance(BaseModel):
    """A monitored n8n deployment.

    The API key is loaded by the store for the client's use but is excluded
    from every serialized form of the model. ``key_error`` is set instead when
    the stored key cannot be decrypted with the current SECRETS_KEY.
    """

    id: str
    host: str
    api_key: str = Field("", exclude=True, repr=False)
    key_error: str = Field("", exclude=True, repr=False)
    ignore_ssl_errors: bool = False
    check_interval_mins: int = DEFAULT_CHECK_INTERVAL_MINS
    last_check: datetime | None = None
    availability_status: bool = False
    availability_note: str = ""
    workflows_active: int = 0
    workflows_inactive: int = 0
    webhooks_active: int = 0
    webhooks_inactive: int = 0
    created: datetime | None = None
    updated: datetime | None = None

    @property
    def effective_interval_mins(self) -> int:
        """Check interval, falling back to the default when unset or zero."""
        return self.check_interval_mins or DEFAULT_CHECK_INTERVAL_MINS

    @property
    def api_base(self) -> str:
        return self.host.rstrip("/") + API_PATH

    @property
    def health_url(self) -> str:
        return self.api_base + "health"

    @property
    def workflows_url(self) -> str:
        return self.api_base + "workflows"

    def workflow_url(self, workflow_id: str) -> str:
        return f"{self.workflows_url}/{workflow_id}"

    def webhook_url(self, path: str) -> str:
        """Externally reachable URL of a webhook node with the given path."""
        return f"{self.host.rstrip('/')}/webhook/{path}"


class InstanceStatus(BaseModel):
    """Outcome of one reconciliation pass, written back onto the instance.

    Counters are ``None`` on a failed pass so the last known values survive.
    """

    availability_status: bool
    availability_note: str = ""
    last_check: datetime
    workflows_active: int | None = None
    workflows_inactive: int | None = None
    webhooks_active: int | None = None
    webhooks_inactive: int | None = None
