"""
api/routes/protected.py -- Role-gated probe endpoints.

Routes:
  GET /admin-only  -- requires the admin role in the token
  GET /gm-only     -- requires the gm role in the token

Used by the web front end and the e2e suite to confirm what a token can
reach. The gate checks token claims only, so a user granted gm must log in
again before /gm-only accepts them.
"""

from fastapi import APIRouter, Depends

from api.models import MessageResponse
from auth.dependencies import authenticate
from auth.models import Role

router = APIRouter()


@router.get("/admin-only", response_model=MessageResponse, dependencies=[Depends(authenticate(Role.admin))])
def admin_only() -> MessageResponse:
    return MessageResponse(message="Admin content")


@router.get("/gm-only", response_model=MessageResponse, dependencies=[Depends(authenticate(Role.gm))])
def gm_only() -> MessageResponse:
    return MessageResponse(message="GM content")
