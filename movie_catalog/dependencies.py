"""FastAPI dependencies: shared state accessors and the authorization chain.

The authentication middleware stores the resolved principal on
``request.state``; the dependencies below read it back and gate access in
order: authenticated, then activated, then holding a permission.
"""

from fastapi import Depends, Request

from .background import BackgroundTaskTracker
from .errors import authentication_required_error, inactive_account_error, not_permitted_error
from .mailer import Mailer
from .models import User
from .stores import Models

# ==================== Request Principal ====================


def set_request_user(request: Request, user: User) -> None:
    request.state.user = user


def get_request_user(request: Request) -> User:
    user = getattr(request.state, "user", None)
    if user is None:
        raise RuntimeError("missing user value in request state")
    return user

# ==================== Application State ====================


def get_models(request: Request) -> Models:
    return request.app.state.models


def get_mailer(request: Request) -> Mailer:
    return request.app.state.mailer


def get_background(request: Request) -> BackgroundTaskTracker:
    return request.app.state.background

# ==================== Authorization Chain ====================


async def require_authenticated_user(user: User = Depends(get_request_user)) -> User:
    if user.is_anonymous:
        raise authentication_required_error()
    return user


async def require_activated_user(user: User = Depends(require_authenticated_user)) -> User:
    if not user.activated:
        raise inactive_account_error()
    return user


def require_permission(code: str):
    """Dependency factory: activated user holding ``code``, looked up fresh on every request."""
    async def permission_dependency(
        user: User = Depends(require_activated_user),
        models: Models = Depends(get_models),
    ) -> User:
        permissions = await models.permissions.get_all_for_user(user.id)
        if not permissions.include(code):
            raise not_permitted_error()
        return user

    return permission_dependency
