"""labfiles core: GitLab-backed file storage for content editors."""

from .config import ClientConfig, load_config
from .errors import APIError, normalize_error
from .gitlab import GitLabAPI
from .schemas import AssetFile, CommitAction, TextFile, TreeEntry

__all__ = [
    "APIError",
    "AssetFile",
    "ClientConfig",
    "CommitAction",
    "GitLabAPI",
    "TextFile",
    "TreeEntry",
    "load_config",
    "normalize_error",
]
