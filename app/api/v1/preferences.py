"""Per-user preferences."""

from fastapi import APIRouter

from app.api.deps import ApiUser, Store
from app.schemas.config import PreferencesRequest, PreferencesResponse
from app.services.validation import require_valid_config_id

router = APIRouter()


@router.put("/preferences", response_model=PreferencesResponse)
def update_preferences(body: PreferencesRequest, current_user: ApiUser, store: Store) -> PreferencesResponse:
    """Set the configuration opened by default; it must exist."""
    require_valid_config_id(body.last_config_id)
    store.set_last_config(current_user.id, body.last_config_id)
    return PreferencesResponse(last_config_id=body.last_config_id)
