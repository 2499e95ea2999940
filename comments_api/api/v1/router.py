"""API v1 router aggregator.

All v1 endpoint routers are included here; main.py mounts this router
at /v1.
"""

from fastapi import APIRouter

from comments_api.api.v1 import comments, healthcheck, tokens, users

router = APIRouter()

# =============================================================================
# Service
# =============================================================================

router.include_router(healthcheck.router, tags=["health"])

# =============================================================================
# Accounts and credentials
# =============================================================================

router.include_router(users.router, prefix="/users", tags=["users"])
router.include_router(tokens.router, prefix="/tokens", tags=["tokens"])

# =============================================================================
# Core Resource Routers
# =============================================================================

router.include_router(comments.router, prefix="/comments", tags=["comments"])
