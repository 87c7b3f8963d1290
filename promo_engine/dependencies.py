from typing import Optional

from fastapi import Depends, Header, HTTPException

ADMIN_ROLE = "admin"


# Identity is established upstream; these headers are trusted input.
def get_current_user_id(x_user_id: Optional[str] = Header(default=None)) -> str:
    user_id = (x_user_id or "").strip()
    if not user_id:
        raise HTTPException(status_code=401, detail="Missing authenticated user id")
    return user_id


def normalize_role(role: Optional[str]) -> str:
    return (role or "").strip().lower()


def require_admin(
    user_id: str = Depends(get_current_user_id),
    x_user_role: Optional[str] = Header(default=None),
) -> str:
    if normalize_role(x_user_role) != ADMIN_ROLE:
        raise HTTPException(status_code=403, detail="Admin role required")
    return user_id
