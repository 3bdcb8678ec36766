from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import jwt

from app.core.config import settings


def create_access_token(*, subject: Dict[str, Any], expires_minutes: Optional[int] = None) -> str:
    """Sign a bearer token with the claims get_current_user reads (user_id, tenant_id, role, academic_year_*).

    The production issuer is the school's auth service; this mirrors its format for tooling and tests.
    """
    issued_at = datetime.now(timezone.utc)
    lifetime = timedelta(minutes=expires_minutes or settings.access_token_expire_minutes)
    claims = {**subject, "iat": issued_at, "exp": issued_at + lifetime}
    return jwt.encode(claims, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)
