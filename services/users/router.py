import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from common.schemas import ok
from libs.auth.tokens import get_current_user
from libs.db import get_db
from libs.rate_limit import default_rate_limiter
from models.user_models import User
from services.auth.devices import DeviceService
from services.users.legal import legal_status
from services.users.schemas import (
    DELETE_CONFIRMATION,
    AcceptLegalRequest,
    DeleteAccountRequest,
    RegisterTokenRequest,
    UpdateProfileRequest,
    device_to_dict,
    sanitize_user,
)
from services.users.service import UserService

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/users",
    tags=["Users"],
    dependencies=[Depends(default_rate_limiter)],
)


@router.get("/profile")
async def get_profile(current_user: User = Depends(get_current_user)):
    return ok({"user": sanitize_user(current_user)})


@router.put("/profile")
async def update_profile(
    body: UpdateProfileRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    user = await UserService(db).update_profile(current_user, body)
    return ok({"user": sanitize_user(user)}, message="Profile updated successfully")


@router.get("/devices")
async def list_devices(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    devices = await UserService(db).list_devices(current_user)
    return ok({"devices": [device_to_dict(d) for d in devices]})


@router.post("/devices/register-token")
async def register_device_token(
    body: RegisterTokenRequest,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    device = await DeviceService(db).register_or_update(
        current_user, body.fcm_token, request, body.device_info
    )
    return ok({"device": device_to_dict(device)}, message="Device registered successfully")


@router.delete("/devices/{device_id}")
async def deactivate_device(
    device_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await UserService(db).deactivate_device(current_user, device_id)
    return ok(message="Device deactivated successfully")


@router.get("/stats")
async def user_stats(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return ok(await UserService(db).stats(current_user))


@router.delete("/account")
async def delete_account(
    body: DeleteAccountRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if body.confirm_delete != DELETE_CONFIRMATION:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f'Please confirm account deletion by sending "{DELETE_CONFIRMATION}"',
        )

    try:
        await UserService(db).delete_account(current_user)
    except Exception as e:
        logger.error(f"Account deletion failed for {current_user.id}: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to delete account",
        )
    return ok(message="Account deleted successfully")


@router.get("/legal/status")
async def get_legal_status(current_user: User = Depends(get_current_user)):
    return ok(legal_status(current_user))


@router.post("/legal/accept")
async def accept_legal(
    body: AcceptLegalRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    updated = await UserService(db).accept_legal(current_user, body)
    if not updated:
        return ok(
            legal_status(current_user),
            message="No updates needed - you are already on the latest versions",
        )
    return ok(legal_status(current_user), message="Legal documents accepted successfully")
