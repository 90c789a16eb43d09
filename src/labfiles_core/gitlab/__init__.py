"""GitLab REST v4 backend."""

from .api import CACHE_KEY_PREFIX, WRITE_ACCESS, GitLabAPI, RequestOptions

__all__ = ["CACHE_KEY_PREFIX", "GitLabAPI", "RequestOptions", "WRITE_ACCESS"]
