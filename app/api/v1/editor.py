"""Form-based editor actions for the browser (session cookie + CSRF token)."""

from typing import Annotated, Any

from fastapi import APIRouter, Depends, Request, Response

from app.api.deps import Authenticator, ClientIp, SessionUserWithCsrf, Store, session_token
from app.api.v1.auth import clear_session_cookie
from app.schemas.editor import EditorActionResponse
from app.services.editor_commands import EditorContext, dispatch_editor_command, parse_editor_command

router = APIRouter()


async def read_form(request: Request) -> dict[str, Any]:
    return dict(await request.form())


@router.post("/actions", response_model=EditorActionResponse)
def editor_action(
    request: Request,
    response: Response,
    current_user: SessionUserWithCsrf,
    form: Annotated[dict[str, Any], Depends(read_form)],
    store: Store,
    authenticator: Authenticator,
    ip: ClientIp,
) -> EditorActionResponse:
    """
    Run one editor action. The form's `intent` field selects the action:
    save, saveVersion, createConfig, restoreVersion, import, setLastConfig or logout.
    """
    command = parse_editor_command(form)
    ctx = EditorContext(
        store=store,
        authenticator=authenticator,
        user_id=current_user.id,
        client_ip=ip,
        session_token=session_token(request),
    )
    result = dispatch_editor_command(command, ctx)
    if result.logged_out:
        clear_session_cookie(response)
    return result
