from __future__ import annotations

import base64
import json
import logging
import threading
import time
from collections.abc import Mapping, Sequence
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Any

import requests

from labfiles_core.config import ClientConfig, encode_component
from labfiles_core.errors import APIError, normalize_error
from labfiles_core.schemas import (
    AssetFile,
    CommitAction,
    CommitActionPayload,
    CommitPayload,
    TextFile,
    TreeEntry,
)
from labfiles_core.storage import ContentCache

WRITE_ACCESS = 30
CACHE_KEY_PREFIX = "gh."
_BODYLESS_METHODS = {"HEAD", "DELETE"}

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class RequestOptions:
    method: str = "GET"
    headers: dict[str, str] = field(default_factory=dict)
    params: dict[str, Any] = field(default_factory=dict)
    body: str | bytes | None = None
    no_store: bool = False


class _CacheBuster:
    """Millisecond timestamps, bumped so no two calls share a value."""

    def __init__(self) -> None:
        self._last = 0
        self._lock = threading.Lock()

    def next(self) -> int:
        with self._lock:
            value = max(int(time.time() * 1000), self._last + 1)
            self._last = value
            return value


class GitLabAPI:
    """Branch-scoped file access to one GitLab project over REST v4."""

    def __init__(
        self,
        config: ClientConfig,
        *,
        cache: ContentCache | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self.config = config
        self.cache = cache
        self.session = session or requests.Session()
        self._cache_buster = _CacheBuster()

    @classmethod
    def from_config(
        cls,
        config: ClientConfig,
        *,
        cache: ContentCache | None = None,
        session: requests.Session | None = None,
    ) -> GitLabAPI:
        return cls(config, cache=cache, session=session)

    @property
    def branch(self) -> str:
        return self.config.branch

    @property
    def repo_url(self) -> str:
        return self.config.repo_url

    def user(self) -> dict[str, Any]:
        return self.request("/user")

    def has_write_access(self) -> bool:
        project = self.request(self.repo_url)
        permissions = (project or {}).get("permissions") or {}
        for scope in ("project_access", "group_access"):
            access = permissions.get(scope)
            if access and (access.get("access_level") or 0) >= WRITE_ACCESS:
                return True
        return False

    def request_headers(self, headers: Mapping[str, str] | None = None) -> dict[str, str]:
        merged = dict(headers or {})
        if self.config.token:
            merged["Authorization"] = f"Bearer {self.config.token}"
        return merged

    def url_for(self, path: str, params: Mapping[str, Any] | None = None) -> str:
        query = [f"ts={self._cache_buster.next()}"]
        query.extend(
            f"{key}={encode_component(value)}" for key, value in (params or {}).items()
        )
        return f"{self.config.api_root}{path}?{'&'.join(query)}"

    def request(self, path: str, options: RequestOptions | None = None) -> Any:
        options = options or RequestOptions()
        method = options.method.upper()
        headers = self.request_headers(options.headers)
        if options.no_store:
            headers.setdefault("Cache-Control", "no-store")
        url = self.url_for(path, options.params)

        try:
            response = self.session.request(
                method,
                url,
                headers=headers,
                data=options.body,
                timeout=self.config.timeout_seconds,
            )
        except requests.RequestException as exc:
            logger.debug("gitlab request failed method=%s path=%s error=%s", method, path, exc)
            raise normalize_error(exc, None) from exc

        logger.debug(
            "gitlab request method=%s path=%s status=%s", method, path, response.status_code
        )
        try:
            value = self._decode(response, method)
        except ValueError as exc:
            raise normalize_error(exc, None) from exc

        if 200 <= response.status_code < 300:
            return value
        raise normalize_error(value, response)

    @staticmethod
    def _decode(response: requests.Response, method: str) -> Any:
        if method in _BODYLESS_METHODS:
            return None
        content_type = response.headers.get("Content-Type") or ""
        if "json" in content_type:
            return response.json()
        return response.text

    def read_file(self, path: str, sha: str | None = None, branch: str | None = None) -> Any:
        cache_key = f"{CACHE_KEY_PREFIX}{sha}" if sha else None
        if cache_key and self.cache is not None:
            cached = self.cache.get(cache_key)
            if cached is not None:
                logger.info("content cache hit path=%s sha=%s", path, sha)
                return cached
            logger.info("content cache miss path=%s sha=%s", path, sha)

        result = self.request(
            f"{self._file_url(path)}/raw",
            RequestOptions(params={"ref": branch or self.branch}, no_store=True),
        )

        if cache_key and self.cache is not None:
            try:
                self.cache.set(cache_key, result)
                logger.info("content cache set path=%s sha=%s", path, sha)
            except Exception:
                logger.warning("content cache write failed sha=%s", sha, exc_info=True)
        return result

    def file_download_url(self, path: str, branch: str | None = None) -> str:
        return self.url_for(f"{self._file_url(path)}/raw", {"ref": branch or self.branch})

    def file_exists(self, path: str, branch: str | None = None) -> bool:
        try:
            self.request(
                self._file_url(path),
                RequestOptions(
                    method="HEAD",
                    params={"ref": branch or self.branch},
                    no_store=True,
                ),
            )
        except APIError as exc:
            # A 404 means either a missing file or a missing endpoint; HEAD
            # carries no body to tell them apart.
            if exc.status == 404:
                return False
            raise
        return True

    def list_files(self, path: str) -> list[TreeEntry]:
        entries = self.request(
            f"{self.repo_url}/repository/tree",
            RequestOptions(params={"path": path, "ref": self.branch}),
        )
        files = [TreeEntry.model_validate(entry) for entry in entries or []]
        return [entry for entry in files if entry.is_file]

    def delete_file(
        self, path: str, commit_message: str, *, branch: str | None = None
    ) -> None:
        self.request(
            self._file_url(path),
            RequestOptions(
                method="DELETE",
                params={"commit_message": commit_message, "branch": branch or self.branch},
            ),
        )

    def persist_files(
        self, files: Sequence[TextFile | AssetFile], *, commit_message: str
    ) -> list[TextFile | AssetFile]:
        """Commit each file separately, all at once.

        Returns results in input order. The first failure is raised; commits
        already in flight are left to finish on their own.
        """
        if not files:
            return []

        # Workers share one session; each thread has only one request in flight.
        executor = ThreadPoolExecutor(
            max_workers=len(files), thread_name_prefix="labfiles-persist"
        )
        try:
            futures = [
                executor.submit(self._persist_one, item, commit_message) for item in files
            ]
            done, _ = wait(futures, return_when=FIRST_EXCEPTION)
            failed = [f for f in futures if f in done and f.exception() is not None]
            if failed:
                raise failed[0].exception()
            return [future.result() for future in futures]
        finally:
            executor.shutdown(wait=False)

    def _persist_one(
        self, item: TextFile | AssetFile, commit_message: str
    ) -> TextFile | AssetFile:
        exists = self.file_exists(item.path)
        return self.upload_and_commit(
            item, commit_message=commit_message, new_file=not exists
        )

    def upload_and_commit(
        self,
        item: TextFile | AssetFile,
        *,
        commit_message: str,
        new_file: bool = True,
        branch: str | None = None,
    ) -> TextFile | AssetFile:
        content = item.to_base64()
        file_path = item.path.removeprefix("/")

        # The files endpoint would put the content into the URI; commits take it in the body.
        payload = CommitPayload(
            branch=branch or self.branch,
            commit_message=commit_message,
            actions=[
                CommitActionPayload(
                    action=CommitAction.CREATE if new_file else CommitAction.UPDATE,
                    file_path=file_path,
                    content=content,
                )
            ],
        )
        self.request(
            f"{self.repo_url}/repository/commits",
            RequestOptions(
                method="POST",
                headers={"Content-Type": "application/json"},
                body=json.dumps(payload.model_dump(mode="json")),
            ),
        )
        return item.model_copy(update={"uploaded": True})

    @staticmethod
    def to_base64(text: str) -> str:
        return base64.b64encode(text.encode("utf-8")).decode("ascii")

    @staticmethod
    def from_base64(encoded: str) -> str:
        return base64.b64decode(encoded).decode("utf-8")

    def _file_url(self, path: str) -> str:
        return f"{self.repo_url}/repository/files/{encode_component(path)}"
