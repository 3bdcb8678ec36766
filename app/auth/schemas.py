from typing import Dict, Optional
from uuid import UUID

from pydantic import BaseModel


class CurrentUser(BaseModel):
    """Lightweight representation of the authenticated user for RBAC checks.
    academic_year_id and academic_year_status come from the academic year embedded in the access token.
    """

    id: UUID
    tenant_id: UUID
    role: str
    permissions: Dict[str, Dict[str, bool]]
    academic_year_id: Optional[UUID] = None
    academic_year_status: Optional[str] = None  # PLANNED | ACTIVE | CLOSED | ARCHIVED
