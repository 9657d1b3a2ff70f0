# ahl_allah/routers/admin_router.py
import logging

from fastapi import APIRouter, Depends

from ..dependencies import get_admin_service, require_admin
from ..application.services.admin_service import AdminService
from ..application.services.token_service import TokenIdentity
from ..exceptions import create_success_response
from ..schemas.admin.admin import UpdateRoleRequest
from ..schemas.auth.auth import user_out, tutor_profile_out

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["Admin"])


@router.get("/pending-mohafez")
def pending_mohafez(
    admin: TokenIdentity = Depends(require_admin),
    admins: AdminService = Depends(get_admin_service),
):
    pending = [
        {**user_out(user), "mohafezUser": tutor_profile_out(profile)}
        for user, profile in admins.pending_tutors()
    ]
    return create_success_response("Pending mohafez users retrieved", pending)


@router.put("/approve-mohafez/{user_id}")
def approve_mohafez(
    user_id: str,
    admin: TokenIdentity = Depends(require_admin),
    admins: AdminService = Depends(get_admin_service),
):
    user = admins.approve(user_id, admin.user_id)
    return create_success_response("Mohafez approved successfully", user_out(user))


@router.put("/reject-mohafez/{user_id}")
def reject_mohafez(
    user_id: str,
    admin: TokenIdentity = Depends(require_admin),
    admins: AdminService = Depends(get_admin_service),
):
    admins.reject(user_id, admin.user_id)
    return create_success_response("Mohafez rejected successfully")


@router.put("/update-role/{user_id}")
def update_role(
    user_id: str,
    payload: UpdateRoleRequest,
    admin: TokenIdentity = Depends(require_admin),
    admins: AdminService = Depends(get_admin_service),
):
    user = admins.update_role(user_id, payload.role_id, admin.user_id)
    return create_success_response("User role updated successfully", user_out(user))
