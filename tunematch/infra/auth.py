"""Gateway identity for FastAPI endpoints.

Authentication happens upstream; the gateway forwards the verified user id in
the ``X-User-Id`` header and this service trusts it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import Header, HTTPException, status


@dataclass(slots=True)
class AuthenticatedUser:
	id: str


async def get_current_user(
	x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
) -> AuthenticatedUser:
	user_id = (x_user_id or "").strip()
	if not user_id:
		raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="missing_user")
	return AuthenticatedUser(id=user_id)
