# ahl_allah/schemas/admin/admin.py
from pydantic import BaseModel, ConfigDict, Field


class UpdateRoleRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    role_id: int = Field(..., alias="roleId")
