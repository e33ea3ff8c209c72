"""System endpoints for operating the AI analysis scheduler."""

from datetime import datetime
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field, model_validator
from sqlalchemy import select
from starlette.status import HTTP_400_BAD_REQUEST, HTTP_403_FORBIDDEN

from app.core.events import AppStateDict, get_app_state
from app.core.logging import get_logger
from app.database.models import SystemConfigModel
from app.database.repositories import NoteRepository, SystemConfigRepository
from app.llm.analysis import check_image_sensitive
from app.llm.config import (
    AI_CONFIG_KEYS,
    load_runtime_config,
    mask_config_value,
    validate_config_value,
)
from app.llm.queue.recovery import reset_job, reset_jobs
from app.llm.queue.types import AnalysisStatus

router = APIRouter(prefix="/system", tags=["system"])

logger = get_logger(module="system_api")


def get_services(request: Request) -> AppStateDict:
    """Dependency returning the shared scheduler services."""
    return get_app_state(request.app)


class ResetRequest(BaseModel):
    """Body of the reset endpoint: either a status or a single note id."""

    status: Optional[AnalysisStatus] = None
    note_id: Optional[str] = None

    @model_validator(mode="after")
    def exactly_one_target(self) -> "ResetRequest":
        """Require exactly one of ``status`` and ``note_id``."""
        if (self.status is None) == (self.note_id is None):
            raise ValueError("Provide exactly one of 'status' or 'note_id'")
        return self


class ConfigUpdateRequest(BaseModel):
    """Body of the config update endpoint."""

    config_key: str = Field(..., min_length=1)
    config_value: str


class ImageCheckRequest(BaseModel):
    """Body of the image sensitivity endpoint."""

    image_url: str = Field(..., min_length=1)


class ConfigEntry(BaseModel):
    """One AI config row as returned by the API."""

    config_key: str
    config_value: str
    config_desc: Optional[str] = None
    updated_at: Optional[datetime] = None
    updated_by: Optional[str] = None


@router.post("/ai-dispatch")
async def trigger_dispatch(
    services: AppStateDict = Depends(get_services),
) -> dict[str, Any]:
    """
    Start a batch of analysis workers if the scheduler admits one.

    Returns immediately; the batch runs in the background. The ``data``
    field carries the admission outcome (``disabled``, ``ceiling_reached``,
    ``nothing_pending``, ``accepted`` or ``error``).
    """
    result = await services.dispatcher.dispatch()
    return {"success": True, "data": result.model_dump(mode="json", exclude_none=True)}


@router.post("/ai-reset")
async def reset_analysis(
    body: ResetRequest,
    services: AppStateDict = Depends(get_services),
) -> dict[str, Any]:
    """Requeue in_progress or failed notes, in bulk by status or one by id."""
    if body.status is not None:
        count = await reset_jobs(services.session_factory, body.status)
        return {"success": True, "data": {"status": body.status.value, "count": count}}

    note_id = str(body.note_id)
    reset = await reset_job(services.session_factory, note_id)
    return {"success": True, "data": {"note_id": note_id, "reset": reset}}


@router.get("/ai-stats")
async def analysis_stats(
    services: AppStateDict = Depends(get_services),
) -> dict[str, Any]:
    """Note counts per analysis status."""
    async with services.session_factory() as session:
        stats = await NoteRepository(session).stats()
    return {"success": True, "data": stats.model_dump()}


@router.get("/ai-config")
async def get_ai_config(
    services: AppStateDict = Depends(get_services),
) -> dict[str, Any]:
    """Stored AI configuration rows; the OpenRouter key is masked."""
    async with services.session_factory() as session:
        result = await session.execute(
            select(SystemConfigModel)
            .where(SystemConfigModel.config_key.in_(AI_CONFIG_KEYS))
            .order_by(SystemConfigModel.config_key)
        )
        rows = result.scalars().all()

    entries = [
        ConfigEntry(
            config_key=row.config_key,
            config_value=mask_config_value(row.config_key, row.config_value),
            config_desc=row.config_desc,
            updated_at=row.updated_at,
            updated_by=row.updated_by,
        ).model_dump(mode="json")
        for row in rows
    ]
    return {"success": True, "data": entries}


@router.post("/ai-config")
async def update_ai_config(
    body: ConfigUpdateRequest,
    request: Request,
    services: AppStateDict = Depends(get_services),
) -> dict[str, Any]:
    """Update one AI configuration key after validating its value."""
    try:
        validate_config_value(body.config_key, body.config_value)
    except KeyError:
        raise HTTPException(
            status_code=HTTP_403_FORBIDDEN,
            detail=f"Config key '{body.config_key}' cannot be modified",
        )
    except ValueError as e:
        raise HTTPException(status_code=HTTP_400_BAD_REQUEST, detail=str(e))

    async with services.session_factory() as session:
        await SystemConfigRepository(session).set_value(
            body.config_key,
            body.config_value,
            updated_by=request.headers.get("X-Operator"),
        )

    logger.info(
        "ai_config_updated",
        config_key=body.config_key,
        config_value=mask_config_value(body.config_key, body.config_value),
    )
    return {"success": True, "message": "Config updated"}


@router.post("/check-image-sensitive")
async def check_image(
    body: ImageCheckRequest,
    services: AppStateDict = Depends(get_services),
) -> dict[str, Any]:
    """
    Ask the configured model to describe one image.

    A refusal, an unparseable reply or a backend failure all mark the image
    as sensitive.
    """
    async with services.session_factory() as session:
        config = await load_runtime_config(session)

    data = await check_image_sensitive(
        body.image_url,
        config,
        provider_resolver=services.dispatcher.provider_resolver,
    )
    return {"success": True, "data": data}
