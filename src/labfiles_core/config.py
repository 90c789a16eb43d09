from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any
from urllib.parse import quote

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
)

DEFAULT_API_ROOT = "https://gitlab.com/api/v4"
DEFAULT_BRANCH = "master"
DEFAULT_TOKEN_ENV = "GITLAB_TOKEN"


def encode_component(value: object) -> str:
    """Percent-encode like JavaScript's encodeURIComponent."""
    return quote(str(value), safe="-_.!~*'()")


class ClientConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    api_root: str = DEFAULT_API_ROOT
    token: str | None = None
    branch: str = DEFAULT_BRANCH
    repo: str = ""
    timeout_seconds: float = Field(default=20.0, gt=0.0)

    @field_validator("api_root")
    @classmethod
    def validate_api_root(cls, value: str) -> str:
        normalized = value.strip().rstrip("/")
        if not normalized:
            raise ValueError("api_root must not be empty")
        return normalized

    @field_validator("token")
    @classmethod
    def validate_token(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = value.strip()
        return normalized or None

    @field_validator("branch")
    @classmethod
    def validate_branch(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("branch must not be empty")
        return normalized

    @property
    def repo_url(self) -> str:
        return f"/projects/{encode_component(self.repo)}"

    def with_token_from_env(self, env_var: str = DEFAULT_TOKEN_ENV) -> ClientConfig:
        if self.token:
            return self
        token = os.getenv(env_var, "").strip()
        if not token:
            raise ValueError(f"Environment variable {env_var} is not set.")
        return self.model_copy(update={"token": token})


def load_config(path: str | Path) -> ClientConfig:
    raw = Path(path).read_text(encoding="utf-8")
    payload = _parse_yaml_or_json(raw)
    try:
        return ClientConfig.model_validate(payload)
    except ValidationError as exc:
        raise ValueError(f"Invalid configuration: {exc}") from exc


def _parse_yaml_or_json(raw: str) -> dict[str, Any]:
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        parsed = _parse_yaml(raw)
    if not isinstance(parsed, dict):
        raise ValueError("Configuration root must be an object.")
    return parsed


def _parse_yaml(raw: str) -> Any:
    import yaml

    try:
        return yaml.safe_load(raw)
    except yaml.YAMLError as exc:
        raise ValueError(f"Configuration is neither JSON nor YAML: {exc}") from exc
