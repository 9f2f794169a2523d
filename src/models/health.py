"""Health-check result models."""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field


class ComponentHealth(BaseModel):
    """Availability of a single collaborator (ledger, blob store, index...)."""

    model_config = ConfigDict(frozen=True)

    name: str
    healthy: bool
    provider: str = ""
    detail: str = ""
    entry_count: int | None = None  # indexes only


class HealthReport(BaseModel):
    """Aggregate availability of every component the pipeline depends on."""

    model_config = ConfigDict(frozen=True)

    components: list[ComponentHealth] = Field(default_factory=list)
    checked_at: datetime = Field(
        default_factory=lambda: datetime.now(tz=timezone.utc)  # noqa: UP017
    )

    @property
    def healthy(self) -> bool:
        return all(component.healthy for component in self.components)
