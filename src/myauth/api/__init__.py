"""API route aggregation.

All routers registered here get mounted in main.py.

Learn: Both routers are open. Auth-protected endpoints (like
/auth/me) declare Depends(get_current_user) themselves.
"""

from fastapi import APIRouter

from myauth.api.auth import router as auth_router
from myauth.api.health import router as health_router

api_router = APIRouter(prefix="/api")

api_router.include_router(health_router, tags=["health"])
api_router.include_router(auth_router, tags=["auth"])
