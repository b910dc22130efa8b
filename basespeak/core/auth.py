"""
Caller identity from the x-user-id header OR dev-mode bypass. Controlled by FF_USE_AUTH flag.

Sign-in happens upstream; this service only trusts the identity the gateway forwards.
"""

import logging
from dataclasses import dataclass

from .flags import get_flags

logger = logging.getLogger(__name__)


@dataclass
class AuthenticatedUser:
    user_id: str
    name: str = ""


# Dev-mode user, returned when FF_USE_AUTH=false
DEV_USER = AuthenticatedUser(user_id="dev-user", name="Dev User")


async def get_current_user(user_header: str = "") -> AuthenticatedUser:
    """
    Resolve the current user from the x-user-id header.
    If FF_USE_AUTH is false, returns a dev user.
    """
    flags = get_flags()

    if not flags.use_auth:
        return DEV_USER

    user_id = (user_header or "").strip()
    if not user_id:
        raise PermissionError("Missing user context")

    return AuthenticatedUser(user_id=user_id)
