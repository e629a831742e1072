"""Webhook configuration API endpoints, one config per scanning policy."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from invulnerable.db import get_db
from invulnerable.exceptions import NotFoundError
from invulnerable.repositories.dependencies import get_webhook_config_repository
from invulnerable.repositories.webhook_config_repository import WebhookConfigRepository
from invulnerable.schemas.webhook_config import WebhookConfigResponse, WebhookConfigUpdate

router = APIRouter()


@router.get("/{namespace}/{name}", response_model=WebhookConfigResponse)
async def get_webhook_config(
    namespace: str,
    name: str,
    repo: WebhookConfigRepository = Depends(get_webhook_config_repository),
):
    """Get the webhook config of a scanning policy."""
    config = await repo.get(namespace, name)
    if config is None:
        raise NotFoundError("webhook config", f"{namespace}/{name}")
    return WebhookConfigResponse.model_validate(config)


@router.put("/{namespace}/{name}", response_model=WebhookConfigResponse)
async def put_webhook_config(
    namespace: str,
    name: str,
    body: WebhookConfigUpdate,
    db: AsyncSession = Depends(get_db),
    repo: WebhookConfigRepository = Depends(get_webhook_config_repository),
):
    """Create or replace the webhook config of a scanning policy."""
    values = body.model_dump()
    values["webhook_format"] = body.webhook_format.value
    config = await repo.upsert(namespace, name, **values)
    await db.commit()
    await db.refresh(config)
    return WebhookConfigResponse.model_validate(config)


@router.delete("/{namespace}/{name}", status_code=204)
async def delete_webhook_config(
    namespace: str,
    name: str,
    db: AsyncSession = Depends(get_db),
    repo: WebhookConfigRepository = Depends(get_webhook_config_repository),
):
    """Delete the webhook config of a scanning policy."""
    if not await repo.delete(namespace, name):
        raise NotFoundError("webhook config", f"{namespace}/{name}")
    await db.commit()
