"""Form-encoded editor actions, discriminated by the `intent` field."""

from datetime import datetime
from typing import Annotated, Any, Literal, Union

from pydantic import Field, TypeAdapter

from app.schemas.common import CamelModel


class SaveCommand(CamelModel):
    intent: Literal["save"]
    config_id: str
    config: str
    expected_updated_at: str | None = None


class SaveVersionCommand(CamelModel):
    intent: Literal["saveVersion"]
    config_id: str
    config: str
    expected_updated_at: str | None = None


class CreateConfigCommand(CamelModel):
    intent: Literal["createConfig"]
    config_id: str
    config: str


class RestoreVersionCommand(CamelModel):
    intent: Literal["restoreVersion"]
    config_id: str
    loaded_version: int


class ImportCommand(CamelModel):
    intent: Literal["import"]
    import_data: str


class SetLastConfigCommand(CamelModel):
    intent: Literal["setLastConfig"]
    last_config_id: str


class LogoutCommand(CamelModel):
    intent: Literal["logout"]


EditorCommand = Annotated[
    Union[
        SaveCommand,
        SaveVersionCommand,
        CreateConfigCommand,
        RestoreVersionCommand,
        ImportCommand,
        SetLastConfigCommand,
        LogoutCommand,
    ],
    Field(discriminator="intent"),
]

editor_command_adapter: TypeAdapter[EditorCommand] = TypeAdapter(EditorCommand)


class EditorActionResponse(CamelModel):
    """Result of an editor action; only the fields relevant to the intent are set."""

    success: bool = True
    intent: str
    message: str | None = None
    config_id: str | None = None
    saved_at: datetime | None = None
    updated_at: datetime | None = None
    version_number: int | None = None
    loaded_version: int | None = None
    last_config_id: str | None = None
    data: dict[str, Any] | None = None
    logged_out: bool = False
