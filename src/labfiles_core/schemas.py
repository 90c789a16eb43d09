from __future__ import annotations

import base64
from enum import StrEnum
from pathlib import Path
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field


class DTOBase(BaseModel):
    model_config = ConfigDict(extra="forbid")


class CommitAction(StrEnum):
    CREATE = "create"
    UPDATE = "update"


class TreeEntry(BaseModel):
    """One row of ``/repository/tree``. GitLab sends more fields than we use."""

    model_config = ConfigDict(extra="ignore")

    id: str | None = None
    name: str = ""
    type: str
    path: str
    mode: str | None = None

    @property
    def is_file(self) -> bool:
        return self.type == "blob"


class TextFile(DTOBase):
    kind: Literal["text"] = "text"
    path: str
    raw: str
    uploaded: bool = False

    def to_base64(self) -> str:
        return base64.b64encode(self.raw.encode("utf-8")).decode("ascii")


class AssetFile(DTOBase):
    kind: Literal["asset"] = "asset"
    path: str
    data: bytes
    uploaded: bool = False

    @classmethod
    def from_path(cls, local_path: str | Path, *, path: str) -> AssetFile:
        return cls(path=path, data=Path(local_path).read_bytes())

    def to_base64(self) -> str:
        return base64.b64encode(self.data).decode("ascii")


FileChange = Annotated[TextFile | AssetFile, Field(discriminator="kind")]


class CommitActionPayload(DTOBase):
    action: CommitAction
    file_path: str
    content: str
    encoding: Literal["base64"] = "base64"


class CommitPayload(DTOBase):
    branch: str
    commit_message: str
    actions: list[CommitActionPayload]
