from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import NoReturn

import typer

from labfiles_core import APIError, ClientConfig, GitLabAPI, load_config
from labfiles_core.config import DEFAULT_TOKEN_ENV
from labfiles_core.schemas import AssetFile, TextFile
from labfiles_core.storage import FileCache

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)

app = typer.Typer(help="labfiles: read and commit files in a GitLab project")

_DEFAULT_CACHE_DIR = Path("data/cache/content")


def _config_option() -> Path | None:
    return typer.Option(
        None,
        "--config",
        help="Client config file (JSON or YAML).",
        exists=True,
        dir_okay=False,
        readable=True,
    )


def _repo_option() -> str | None:
    return typer.Option(None, "--repo", help="Project path, e.g. group/project.")


def _token_env_option() -> str:
    return typer.Option(
        DEFAULT_TOKEN_ENV,
        "--token-env",
        help="Environment variable holding the GitLab access token.",
    )


@app.command()
def whoami(
    config_path: Path | None = _config_option(),
    repo: str | None = _repo_option(),
    token_env: str = _token_env_option(),
) -> None:
    """Show the user the token belongs to."""
    api = _build_api(config_path, repo=repo, token_env=token_env)
    try:
        user = api.user()
    except APIError as exc:
        _fail(exc)
    typer.echo(f"{user.get('username', '')} ({user.get('name', '')})")


@app.command("can-write")
def can_write(
    config_path: Path | None = _config_option(),
    repo: str | None = _repo_option(),
    token_env: str = _token_env_option(),
) -> None:
    """Check whether the token may push to the project."""
    api = _build_api(config_path, repo=repo, token_env=token_env)
    try:
        allowed = api.has_write_access()
    except APIError as exc:
        _fail(exc)
    typer.echo(f"write_access={str(allowed).lower()}")


@app.command("read")
def read_file(
    path: str = typer.Argument(..., help="File path inside the repository."),
    sha: str | None = typer.Option(None, "--sha", help="Blob hash used as cache key."),
    branch: str | None = typer.Option(None, "--branch", help="Branch or ref to read."),
    cache_dir: Path = typer.Option(
        _DEFAULT_CACHE_DIR,
        "--cache-dir",
        help="Content cache directory.",
    ),
    config_path: Path | None = _config_option(),
    repo: str | None = _repo_option(),
    token_env: str = _token_env_option(),
) -> None:
    """Print a file's content."""
    api = _build_api(
        config_path,
        repo=repo,
        token_env=token_env,
        cache_dir=cache_dir if sha else None,
    )
    try:
        content = api.read_file(path, sha, branch)
    except APIError as exc:
        _fail(exc)
    if isinstance(content, str):
        typer.echo(content, nl=not content.endswith("\n"))
    else:
        typer.echo(json.dumps(content, ensure_ascii=False, indent=2))


@app.command("exists")
def file_exists(
    path: str = typer.Argument(..., help="File path inside the repository."),
    branch: str | None = typer.Option(None, "--branch", help="Branch or ref to check."),
    config_path: Path | None = _config_option(),
    repo: str | None = _repo_option(),
    token_env: str = _token_env_option(),
) -> None:
    """Report whether a file exists on the branch."""
    api = _build_api(config_path, repo=repo, token_env=token_env)
    try:
        exists = api.file_exists(path, branch)
    except APIError as exc:
        _fail(exc)
    typer.echo(f"exists={str(exists).lower()}")


@app.command("ls")
def list_files(
    directory: str = typer.Argument("", help="Directory inside the repository."),
    config_path: Path | None = _config_option(),
    repo: str | None = _repo_option(),
    token_env: str = _token_env_option(),
) -> None:
    """List files (not subdirectories) of a directory on the default branch."""
    api = _build_api(config_path, repo=repo, token_env=token_env)
    try:
        entries = api.list_files(directory)
    except APIError as exc:
        _fail(exc)
    for entry in entries:
        typer.echo(entry.path)
    typer.echo(f"files={len(entries)}")


@app.command("rm")
def delete_file(
    path: str = typer.Argument(..., help="File path inside the repository."),
    message: str = typer.Option(..., "--message", "-m", help="Commit message."),
    branch: str | None = typer.Option(None, "--branch", help="Branch to commit to."),
    config_path: Path | None = _config_option(),
    repo: str | None = _repo_option(),
    token_env: str = _token_env_option(),
) -> None:
    """Delete a file with a commit."""
    api = _build_api(config_path, repo=repo, token_env=token_env)
    try:
        api.delete_file(path, message, branch=branch)
    except APIError as exc:
        _fail(exc)
    typer.echo(f"deleted {path}")


@app.command("push")
def push_files(
    files: list[Path] = typer.Argument(
        ...,
        help="Local files to commit, one commit per file.",
        exists=True,
        dir_okay=False,
        readable=True,
    ),
    message: str = typer.Option(..., "--message", "-m", help="Commit message."),
    prefix: str = typer.Option(
        "",
        "--prefix",
        help="Repository directory the files are written to.",
    ),
    binary: bool = typer.Option(
        False,
        "--binary",
        help="Upload files as raw bytes instead of UTF-8 text.",
    ),
    config_path: Path | None = _config_option(),
    repo: str | None = _repo_option(),
    token_env: str = _token_env_option(),
) -> None:
    """Create or update files in the repository."""
    api = _build_api(config_path, repo=repo, token_env=token_env)
    changes: list[TextFile | AssetFile] = []
    try:
        for local_path in files:
            target = "/".join(part for part in (prefix.strip("/"), local_path.name) if part)
            if binary:
                changes.append(AssetFile.from_path(local_path, path=target))
            else:
                changes.append(TextFile(path=target, raw=local_path.read_text(encoding="utf-8")))
    except ValueError as exc:
        typer.echo(f"{local_path}: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    try:
        results = api.persist_files(changes, commit_message=message)
    except APIError as exc:
        _fail(exc)
    for result in results:
        typer.echo(f"uploaded {result.path}")
    typer.echo(f"uploaded={sum(1 for result in results if result.uploaded)}")


def _build_api(
    config_path: Path | None,
    *,
    repo: str | None,
    token_env: str,
    cache_dir: Path | None = None,
) -> GitLabAPI:
    try:
        config = load_config(config_path) if config_path else ClientConfig()
        if repo:
            config = config.model_copy(update={"repo": repo})
        if not config.repo:
            raise ValueError("No repository configured. Pass --repo or set repo in --config.")
        try:
            config = config.with_token_from_env(token_env)
        except ValueError:
            logging.info("no token in config or %s, using anonymous access", token_env)
    except ValueError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1) from exc

    cache = FileCache(cache_dir) if cache_dir is not None else None
    return GitLabAPI.from_config(config, cache=cache)


def _fail(exc: APIError) -> NoReturn:
    typer.echo(str(exc), err=True)
    raise typer.Exit(code=1) from exc


def main() -> None:
    app()


if __name__ == "__main__":
    main()
