"""Parse and dispatch editor actions posted from the browser."""

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, assert_never

from pydantic import ValidationError

from app.core.errors import AppError, ErrorCode
from app.core.timeutils import as_utc
from app.schemas.editor import (
    CreateConfigCommand,
    EditorActionResponse,
    EditorCommand,
    ImportCommand,
    LogoutCommand,
    RestoreVersionCommand,
    SaveCommand,
    SaveVersionCommand,
    SetLastConfigCommand,
    editor_command_adapter,
)
from app.services.audit import AuditAction, AuditResource, record_audit_event
from app.services.config_store import ConfigNotFoundError, ConfigStore
from app.services.config_transfer import import_configuration
from app.services.tokens import TokenAuthenticator

logger = logging.getLogger(__name__)


@dataclass
class EditorContext:
    store: ConfigStore
    authenticator: TokenAuthenticator
    user_id: int
    client_ip: str
    session_token: str | None = None


def parse_editor_command(form: Mapping[str, Any]) -> EditorCommand:
    """Validate form fields into exactly one command variant."""
    try:
        return editor_command_adapter.validate_python(dict(form))
    except ValidationError as e:
        errors = e.errors()
        types = {err["type"] for err in errors}
        if "union_tag_not_found" in types:
            raise AppError("Missing required field: intent", code=ErrorCode.MISSING_FIELD) from e
        if "union_tag_invalid" in types:
            raise AppError(
                "Unknown intent",
                code=ErrorCode.VALIDATION_ERROR,
                details=f"Unsupported intent {form.get('intent')!r}",
            ) from e
        missing = [str(err["loc"][-1]) for err in errors if err["type"] == "missing"]
        if missing:
            raise AppError(
                f"Missing required field: {missing[0]}",
                code=ErrorCode.MISSING_FIELD,
                details=", ".join(missing),
            ) from e
        details = "; ".join(f"{err['loc'][-1]}: {err['msg']}" for err in errors)
        raise AppError("Invalid editor action", code=ErrorCode.VALIDATION_ERROR, details=details) from e


def _parse_config_json(raw: str) -> Any:
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        raise AppError(
            "Invalid configuration data",
            code=ErrorCode.INVALID_CONFIG_DATA,
            details=f"Configuration is not valid JSON: {e.msg}",
        ) from e


def _save(command: SaveCommand, ctx: EditorContext) -> EditorActionResponse:
    saved_at = ctx.store.save(
        ctx.user_id,
        command.config_id,
        _parse_config_json(command.config),
        expected_updated_at=command.expected_updated_at,
    )
    record_audit_event(
        ctx.store.db,
        AuditAction.CONFIG_UPDATED,
        AuditResource.CONFIG,
        user_id=ctx.user_id,
        resource_id=command.config_id,
        ip_address=ctx.client_ip,
    )
    return EditorActionResponse(
        intent=command.intent,
        message="Configuration saved",
        config_id=command.config_id,
        saved_at=saved_at,
    )


def _save_version(command: SaveVersionCommand, ctx: EditorContext) -> EditorActionResponse:
    saved = ctx.store.save_with_version(
        ctx.user_id,
        command.config_id,
        _parse_config_json(command.config),
        expected_updated_at=command.expected_updated_at,
    )
    record_audit_event(
        ctx.store.db,
        AuditAction.VERSION_CREATED,
        AuditResource.VERSION,
        user_id=ctx.user_id,
        resource_id=f"{command.config_id}:{saved.version_number}",
        ip_address=ctx.client_ip,
    )
    return EditorActionResponse(
        intent=command.intent,
        message=f"Saved as version {saved.version_number}",
        config_id=command.config_id,
        saved_at=saved.updated_at,
        version_number=saved.version_number,
        loaded_version=saved.loaded_version,
    )


def _create_config(command: CreateConfigCommand, ctx: EditorContext) -> EditorActionResponse:
    row = ctx.store.create(ctx.user_id, command.config_id, _parse_config_json(command.config))
    ctx.store.set_last_config(ctx.user_id, command.config_id)
    record_audit_event(
        ctx.store.db,
        AuditAction.CONFIG_CREATED,
        AuditResource.CONFIG,
        user_id=ctx.user_id,
        resource_id=command.config_id,
        ip_address=ctx.client_ip,
    )
    return EditorActionResponse(
        intent=command.intent,
        message="Configuration created",
        config_id=command.config_id,
        saved_at=as_utc(row.updated_at),
        version_number=1,
        loaded_version=1,
        last_config_id=command.config_id,
    )


def _restore_version(command: RestoreVersionCommand, ctx: EditorContext) -> EditorActionResponse:
    if command.loaded_version < 1 or not ctx.store.restore_version(
        ctx.user_id, command.config_id, command.loaded_version
    ):
        raise AppError("Version not found", code=ErrorCode.VERSION_NOT_FOUND, status_code=404)
    row = ctx.store.get(ctx.user_id, command.config_id)
    if row is None:
        raise ConfigNotFoundError(command.config_id)
    record_audit_event(
        ctx.store.db,
        AuditAction.VERSION_RESTORED,
        AuditResource.VERSION,
        user_id=ctx.user_id,
        resource_id=f"{command.config_id}:{command.loaded_version}",
        ip_address=ctx.client_ip,
    )
    return EditorActionResponse(
        intent=command.intent,
        message=f"Restored version {command.loaded_version}",
        config_id=command.config_id,
        updated_at=as_utc(row.updated_at),
        loaded_version=command.loaded_version,
        data=row.data,
    )


def _import(command: ImportCommand, ctx: EditorContext) -> EditorActionResponse:
    result = import_configuration(ctx.store, ctx.user_id, command.import_data)
    row = result.configuration
    record_audit_event(
        ctx.store.db,
        AuditAction.CONFIG_IMPORTED,
        AuditResource.CONFIG,
        user_id=ctx.user_id,
        resource_id=row.config_id,
        ip_address=ctx.client_ip,
        details={"migrated_from": result.migrated_from},
    )
    return EditorActionResponse(
        intent=command.intent,
        message="Configuration imported",
        config_id=row.config_id,
        updated_at=as_utc(row.updated_at),
        last_config_id=row.config_id,
        data=row.data,
    )


def _set_last_config(command: SetLastConfigCommand, ctx: EditorContext) -> EditorActionResponse:
    ctx.store.set_last_config(ctx.user_id, command.last_config_id)
    return EditorActionResponse(intent=command.intent, last_config_id=command.last_config_id)


def _logout(command: LogoutCommand, ctx: EditorContext) -> EditorActionResponse:
    ctx.authenticator.clear_session(ctx.session_token)
    record_audit_event(
        ctx.store.db,
        AuditAction.LOGOUT,
        AuditResource.SESSION,
        user_id=ctx.user_id,
        ip_address=ctx.client_ip,
    )
    return EditorActionResponse(intent=command.intent, message="Logged out", logged_out=True)


def dispatch_editor_command(command: EditorCommand, ctx: EditorContext) -> EditorActionResponse:
    logger.debug("Editor action", extra={"intent": command.intent, "user_id": ctx.user_id})
    if isinstance(command, SaveCommand):
        return _save(command, ctx)
    if isinstance(command, SaveVersionCommand):
        return _save_version(command, ctx)
    if isinstance(command, CreateConfigCommand):
        return _create_config(command, ctx)
    if isinstance(command, RestoreVersionCommand):
        return _restore_version(command, ctx)
    if isinstance(command, ImportCommand):
        return _import(command, ctx)
    if isinstance(command, SetLastConfigCommand):
        return _set_last_config(command, ctx)
    if isinstance(command, LogoutCommand):
        return _logout(command, ctx)
    assert_never(command)
