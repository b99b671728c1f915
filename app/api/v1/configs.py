"""Configuration CRUD, versions, import and export (bearer token)."""

from typing import Annotated, Any

from fastapi import APIRouter, Body, Depends, Path, Query, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.api.deps import ApiUser, ClientIp, Store
from app.core.database import get_db
from app.core.errors import AppError, ErrorCode
from app.core.timeutils import as_utc
from app.models import Configuration
from app.schemas.config import (
    ConfigListItem,
    ConfigListResponse,
    ConfigResponse,
    CreateConfigRequest,
    CreateVersionResponse,
    ImportConfigResponse,
    RestoreVersionResponse,
    SaveConfigResponse,
    UpdateConfigRequest,
    VersionListResponse,
    VersionResponse,
    VersionSummary,
)
from app.services.audit import AuditAction, AuditResource, record_audit_event
from app.services.config_store import (
    DEFAULT_VERSION_LIST_LIMIT,
    MAX_VERSION_LIST_LIMIT,
    ConfigNotFoundError,
    ConfigStore,
)
from app.services.config_transfer import (
    build_export_envelope,
    export_filename,
    import_configuration,
)
from app.services.validation import require_valid_config_id

router = APIRouter()

ConfigIdPath = Annotated[str, Path(description="Configuration identifier ([A-Za-z0-9_-]{1,50})")]


def _to_response(row: Configuration) -> ConfigResponse:
    return ConfigResponse(
        config_id=row.config_id,
        schema_version=row.schema_version,
        updated_at=as_utc(row.updated_at),
        loaded_version=row.loaded_version,
        data=row.data,
    )


def _get_or_404(store: ConfigStore, user_id: int, config_id: str) -> Configuration:
    require_valid_config_id(config_id)
    row = store.get(user_id, config_id)
    if row is None:
        raise ConfigNotFoundError(config_id)
    return row


def _version_number(raw: str) -> int:
    try:
        number = int(raw)
    except ValueError:
        number = 0
    if number < 1:
        raise AppError(
            "Invalid version number",
            code=ErrorCode.INVALID_VERSION_NUMBER,
            details="Version numbers are positive integers",
        )
    return number


def _version_not_found(config_id: str, number: int) -> AppError:
    return AppError(
        "Version not found",
        code=ErrorCode.VERSION_NOT_FOUND,
        status_code=404,
        details=f"'{config_id}' has no version {number}",
    )


@router.get("", response_model=ConfigListResponse)
def list_configs(current_user: ApiUser, store: Store) -> ConfigListResponse:
    summaries = store.list_for_user(current_user.id)
    return ConfigListResponse(
        configs=[
            ConfigListItem(
                config_id=s.config_id,
                updated_at=s.updated_at,
                schema_version=s.schema_version,
                version_count=s.version_count,
                loaded_version=s.loaded_version,
            )
            for s in summaries
        ],
        last_config_id=store.get_last_config_id(current_user.id),
    )


@router.post("", response_model=SaveConfigResponse, status_code=status.HTTP_201_CREATED)
def create_config(
    body: CreateConfigRequest,
    db: Annotated[Session, Depends(get_db)],
    current_user: ApiUser,
    store: Store,
    ip: ClientIp,
) -> SaveConfigResponse:
    """Create a configuration (with version 1) and make it the user's current one."""
    row = store.create(current_user.id, body.config_id, body.data)
    store.set_last_config(current_user.id, body.config_id)
    record_audit_event(
        db,
        AuditAction.CONFIG_CREATED,
        AuditResource.CONFIG,
        user_id=current_user.id,
        resource_id=body.config_id,
        ip_address=ip,
    )
    return SaveConfigResponse(
        config_id=row.config_id,
        saved_at=as_utc(row.updated_at),
        version_number=1,
        latest_version_number=1,
    )


@router.post("/import", response_model=ImportConfigResponse)
def import_config(
    payload: Annotated[Any, Body()],
    db: Annotated[Session, Depends(get_db)],
    current_user: ApiUser,
    store: Store,
    ip: ClientIp,
) -> ImportConfigResponse:
    """Import an exported envelope, migrating older schema versions. Overwrites a configuration with the same ID."""
    result = import_configuration(store, current_user.id, payload)
    row = result.configuration
    record_audit_event(
        db,
        AuditAction.CONFIG_IMPORTED,
        AuditResource.CONFIG,
        user_id=current_user.id,
        resource_id=row.config_id,
        ip_address=ip,
        details={"migrated_from": result.migrated_from},
    )
    return ImportConfigResponse(
        config_id=row.config_id,
        schema_version=row.schema_version,
        migrated_from=result.migrated_from,
        updated_at=as_utc(row.updated_at),
        data=row.data,
    )


@router.get("/{config_id}", response_model=ConfigResponse)
def get_config(config_id: ConfigIdPath, current_user: ApiUser, store: Store) -> ConfigResponse:
    return _to_response(_get_or_404(store, current_user.id, config_id))


@router.put("/{config_id}", response_model=SaveConfigResponse)
def update_config(
    config_id: ConfigIdPath,
    body: UpdateConfigRequest,
    db: Annotated[Session, Depends(get_db)],
    current_user: ApiUser,
    store: Store,
    ip: ClientIp,
) -> SaveConfigResponse:
    """
    Replace the live document. Send expectedUpdatedAt (the updatedAt you last
    read) to be rejected with 409 STALE_DATA instead of overwriting a newer
    write. With createVersion, a snapshot of the saved document is appended.
    """
    require_valid_config_id(config_id)
    if body.create_version:
        saved = store.save_with_version(
            current_user.id,
            config_id,
            body.data,
            expected_updated_at=body.expected_updated_at,
            require_existing=True,
        )
        saved_at = saved.updated_at
    else:
        saved_at = store.save(
            current_user.id,
            config_id,
            body.data,
            expected_updated_at=body.expected_updated_at,
            require_existing=True,
        )
    record_audit_event(
        db,
        AuditAction.CONFIG_UPDATED,
        AuditResource.CONFIG,
        user_id=current_user.id,
        resource_id=config_id,
        ip_address=ip,
    )
    response = SaveConfigResponse(config_id=config_id, saved_at=saved_at)
    if body.create_version:
        number = saved.version_number
        record_audit_event(
            db,
            AuditAction.VERSION_CREATED,
            AuditResource.VERSION,
            user_id=current_user.id,
            resource_id=f"{config_id}:{number}",
            ip_address=ip,
        )
        response.version_number = number
        response.latest_version_number = number
    return response


@router.get("/{config_id}/export")
def export_config(
    config_id: ConfigIdPath,
    db: Annotated[Session, Depends(get_db)],
    current_user: ApiUser,
    store: Store,
    ip: ClientIp,
) -> JSONResponse:
    """Download the configuration as an import-ready JSON envelope."""
    row = _get_or_404(store, current_user.id, config_id)
    envelope = build_export_envelope(row)
    record_audit_event(
        db,
        AuditAction.CONFIG_EXPORTED,
        AuditResource.CONFIG,
        user_id=current_user.id,
        resource_id=config_id,
        ip_address=ip,
    )
    filename = export_filename(current_user.username, config_id)
    return JSONResponse(
        content=envelope,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/{config_id}/versions", response_model=VersionListResponse)
def list_versions(
    config_id: ConfigIdPath,
    current_user: ApiUser,
    store: Store,
    limit: Annotated[int, Query(ge=1, le=MAX_VERSION_LIST_LIMIT)] = DEFAULT_VERSION_LIST_LIMIT,
) -> VersionListResponse:
    _get_or_404(store, current_user.id, config_id)
    versions = store.list_versions(current_user.id, config_id, limit=limit)
    return VersionListResponse(
        config_id=config_id,
        versions=[VersionSummary(version=v.version, created_at=as_utc(v.created_at)) for v in versions],
        latest_version_number=store.latest_version_number(current_user.id, config_id),
    )


@router.post(
    "/{config_id}/versions",
    response_model=CreateVersionResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_version(
    config_id: ConfigIdPath,
    db: Annotated[Session, Depends(get_db)],
    current_user: ApiUser,
    store: Store,
    ip: ClientIp,
) -> CreateVersionResponse:
    """Snapshot the live document as the next version."""
    require_valid_config_id(config_id)
    number = store.create_version(current_user.id, config_id)
    record_audit_event(
        db,
        AuditAction.VERSION_CREATED,
        AuditResource.VERSION,
        user_id=current_user.id,
        resource_id=f"{config_id}:{number}",
        ip_address=ip,
    )
    return CreateVersionResponse(config_id=config_id, version_number=number)


@router.get("/{config_id}/versions/{version}", response_model=VersionResponse)
def get_version(
    config_id: ConfigIdPath,
    version: str,
    current_user: ApiUser,
    store: Store,
) -> VersionResponse:
    require_valid_config_id(config_id)
    number = _version_number(version)
    snapshot = store.get_version(current_user.id, config_id, number)
    if snapshot is None:
        raise _version_not_found(config_id, number)
    return VersionResponse(
        config_id=config_id,
        version=snapshot.version,
        created_at=as_utc(snapshot.created_at),
        data=snapshot.data,
    )


@router.post("/{config_id}/versions/{version}/restore", response_model=RestoreVersionResponse)
def restore_version(
    config_id: ConfigIdPath,
    version: str,
    db: Annotated[Session, Depends(get_db)],
    current_user: ApiUser,
    store: Store,
    ip: ClientIp,
) -> RestoreVersionResponse:
    """Copy a version back into the live document."""
    require_valid_config_id(config_id)
    number = _version_number(version)
    if not store.restore_version(current_user.id, config_id, number):
        raise _version_not_found(config_id, number)
    row = _get_or_404(store, current_user.id, config_id)
    record_audit_event(
        db,
        AuditAction.VERSION_RESTORED,
        AuditResource.VERSION,
        user_id=current_user.id,
        resource_id=f"{config_id}:{number}",
        ip_address=ip,
    )
    return RestoreVersionResponse(
        config_id=config_id,
        restored_version=number,
        updated_at=as_utc(row.updated_at),
        data=row.data,
    )
