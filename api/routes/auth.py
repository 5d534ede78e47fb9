"""
api/routes/auth.py -- Login and first-run bootstrap endpoints.

Routes:
  POST /auth/login        -- password login; returns {user, token}
  POST /bootstrap/admin   -- create the first user; only while no users exist

Security:
  POST /auth/login is rate-limited per client IP (LOGIN_RATE_LIMIT).
  AuthService.login() equalizes timing and returns one undifferentiated
  error for unknown user, missing hash, and wrong password -- never inline
  store.get() + verify_password() here.
  Cache-Control: no-store on login responses so tokens are not cached.
"""

from typing import Optional

from fastapi import APIRouter, Request, Response

from api.limiter import limiter
from api.models import BootstrapRequest, LoginRequest, LoginResponse, UserEnvelope, UserResponse
from auth.service import AuthService
from core.config import get_settings

# Auth policy:
# - POST /auth/login:       public -- login endpoint must be unauthenticated
# - POST /bootstrap/admin:  public, but the store refuses once any user exists
router = APIRouter()


@router.post("/auth/login", response_model=LoginResponse)
@limiter.limit(get_settings().login_rate_limit)
async def login(request: Request, response: Response, body: LoginRequest) -> LoginResponse:
    """Authenticate with username and password; return the user and a bearer token.

    Include the token on later requests as: Authorization: Bearer <token>
    """
    service: AuthService = request.app.state.auth_service
    response.headers["Cache-Control"] = "no-store"
    result = await service.login(body.username, body.password)
    return LoginResponse(user=UserResponse.from_user(result.user), token=result.token)


@router.post("/bootstrap/admin", response_model=UserEnvelope, status_code=201)
async def bootstrap_admin(request: Request, body: Optional[BootstrapRequest] = None) -> UserEnvelope:
    """Create the first user (default admin/admin123 with role admin).

    Returns 400 setup_complete once any user exists. The emptiness check and
    the insert are one atomic store operation, so two concurrent calls cannot
    both succeed.
    """
    service: AuthService = request.app.state.auth_service
    body = body or BootstrapRequest()
    user = await service.bootstrap_admin(body.username, body.password, body.roles)
    return UserEnvelope(user=UserResponse.from_user(user))
