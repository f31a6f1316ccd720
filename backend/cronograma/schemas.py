"""Pydantic schemas."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# ==================== Cronograma ====================


class CronogramaQuery(BaseModel):
    """Resolved filter tuple sent to the portal form."""

    model_config = ConfigDict(frozen=True)

    programa: str = Field(..., pattern=r"^[0-9]+$", description="Academic program code.")
    sede: str = Field(..., pattern=r"^[0-9]+$", description="Campus code.")
    recurso: str = Field(..., pattern=r"^[0-9]+$", description="Resource (jornada) code.")


class CronogramaResponse(BaseModel):
    """Successful lookup, fresh or served from cache."""

    success: bool = True
    cached: bool
    params: CronogramaQuery
    data: Any


class ErrorResponse(BaseModel):
    """Uniform failure envelope."""

    success: bool = False
    message: str


# ==================== Service ====================


class HealthResponse(BaseModel):
    """Liveness probe payload."""

    ok: bool = True
