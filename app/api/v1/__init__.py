"""API v1 routes."""

from fastapi import APIRouter

from app.api.v1 import account_settings, api_tokens, auth, configs, editor, health, preferences

router = APIRouter()
router.include_router(health.router, prefix="/health", tags=["health"])
router.include_router(auth.router, prefix="/auth", tags=["auth"])
router.include_router(api_tokens.router, prefix="/api-tokens", tags=["api-tokens"])
router.include_router(account_settings.router, prefix="/settings", tags=["settings"])
router.include_router(configs.router, prefix="/configs", tags=["configs"])
router.include_router(preferences.router, prefix="/user", tags=["user"])
router.include_router(editor.router, prefix="/editor", tags=["editor"])
