"""
Router per la gestione dei profili utente
Progetto: Print Shop Manager (Gestionale Tipografia)

Endpoints riservati all'Administrador.
"""

import logging
import uuid

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.deps import AdminSession
from app.schemas.user import ProvisionResult, UserCreate, UserResponse, UserUpdate
from app.services.provisioning_service import ProvisioningService
from app.services.user_service import UserService

logger = logging.getLogger(__name__)

user_service = UserService()
provisioning_service = ProvisioningService()

router = APIRouter(
    prefix="/users",
    tags=["Utenti"],
)


@router.get(
    "/",
    response_model=list[UserResponse],
    summary="Lista profili",
)
async def list_users(
    ctx: AdminSession,
    include_inactive: bool = Query(False, description="Includi profili disattivati"),
    db: AsyncSession = Depends(get_db),
):
    return await user_service.list_users(db, include_inactive=include_inactive)


@router.post(
    "/",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Crea profilo",
)
async def create_user(
    data: UserCreate,
    ctx: AdminSession,
    db: AsyncSession = Depends(get_db),
):
    user = await user_service.create_user(db, data, ctx)
    await db.commit()
    return user


@router.patch(
    "/{user_id}",
    response_model=UserResponse,
    summary="Modifica nome e/o password di un profilo",
)
async def update_user(
    data: UserUpdate,
    ctx: AdminSession,
    user_id: uuid.UUID = Path(..., description="UUID del profilo"),
    db: AsyncSession = Depends(get_db),
):
    user = await user_service.update_user(db, user_id, data, ctx)
    await db.commit()
    return user


@router.post(
    "/{user_id}/deactivate",
    response_model=UserResponse,
    summary="Disattiva un profilo",
)
async def deactivate_user(
    ctx: AdminSession,
    user_id: uuid.UUID = Path(..., description="UUID del profilo"),
    db: AsyncSession = Depends(get_db),
):
    user = await user_service.deactivate_user(db, user_id, ctx)
    await db.commit()
    return user


@router.post(
    "/provision/{preset}",
    response_model=ProvisionResult,
    summary="Crea i profili di un preset",
    description="Preset disponibili: admins, cashier, vinyl. Le email esistenti vengono saltate.",
)
async def provision_users(
    ctx: AdminSession,
    preset: str = Path(..., description="Nome del preset"),
    db: AsyncSession = Depends(get_db),
):
    outcome = await provisioning_service.provision(db, preset)
    await db.commit()
    logger.info("Preset %s eseguito da %s", preset, ctx.user_id)
    return ProvisionResult(
        preset=outcome.preset,
        created=[UserResponse.model_validate(u) for u in outcome.created],
        skipped=outcome.skipped,
    )


__all__ = ["router"]
