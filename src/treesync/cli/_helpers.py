"""Shared helpers, option decorators, and the main CLI group."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import click
from dulwich.errors import NotGitRepository
from dulwich.repo import Repo

from .._types import ChangeOp
from ..gittree import GitTreeFS
from ..local import LocalFS
from ..view import FilesystemView

CHANGE_PREFIX = {ChangeOp.ADD: "+", ChangeOp.CHANGE: "~", ChangeOp.REMOVE: "-"}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Endpoint:
    """One side of a diff or sync as given on the command line.

    Repo-side arguments are written ``[ref]:path`` (``:docs``,
    ``main:site``); anything else is a local path.
    """
    raw: str
    is_repo: bool
    ref: str | None
    path: str


def _parse_endpoint(raw: str) -> Endpoint:
    if raw.startswith(":"):
        return Endpoint(raw, True, None, raw[1:] or "/")
    ref, sep, rest = raw.partition(":")
    # "C:\..." drive letters and "./a:b" style local names stay local.
    if sep and len(ref) > 1 and "/" not in ref and "\\" not in ref:
        return Endpoint(raw, True, ref, rest or "/")
    return Endpoint(raw, False, None, raw)


def _status(ctx, msg):
    """Emit a status message to stderr when verbose mode (-v) is on."""
    if ctx.obj.get("verbose"):
        click.echo(msg, err=True)


def _store_repo(ctx, param, value):
    """Click callback: store --repo value in the context."""
    ctx.ensure_object(dict)
    if value is not None:
        ctx.obj["repo_path"] = value
    return value


def _repo_option(f):
    """Shared --repo/-r option decorator for all commands."""
    return click.option(
        "--repo", "-r", type=click.Path(), envvar="TREESYNC_REPO",
        help="Path to bare git repository (or set TREESYNC_REPO).",
        expose_value=False, callback=_store_repo, is_eager=True,
    )(f)


def _require_repo(ctx) -> str:
    """Get the repo path from context, raising a clear error if missing."""
    repo = ctx.obj.get("repo_path")
    if not repo:
        raise click.ClickException(
            "No repository specified. Use --repo or set TREESYNC_REPO."
        )
    return repo


def _default_branch(repo_path: str) -> str:
    """Return the repo's HEAD branch, falling back to 'main'."""
    try:
        head = Repo(repo_path).refs.read_ref(b"HEAD")
    except (NotGitRepository, OSError):
        return "main"
    prefix = b"ref: refs/heads/"
    if head and head.startswith(prefix):
        return head[len(prefix):].decode()
    return "main"


def _open_reader(ctx, ep: Endpoint, *, missing_ok: bool = False) -> FilesystemView:
    """Open *ep* for reading.

    With *missing_ok*, a repo-side ref that does not exist yet reads as
    an empty branch.
    """
    if not ep.is_repo:
        return LocalFS(ep.path)
    repo_path = _require_repo(ctx)
    try:
        return GitTreeFS.snapshot(repo_path, ep.ref, root=ep.path)
    except (FileNotFoundError, NotGitRepository) as exc:
        raise click.ClickException(str(exc))
    except KeyError:
        if missing_ok:
            return GitTreeFS.open_branch(
                repo_path, ep.ref or _default_branch(repo_path),
                root=ep.path, create=False,
            )
        raise click.ClickException(f"Unknown ref: {ep.ref or 'HEAD'}")
    except ValueError as exc:
        raise click.ClickException(str(exc))


def _require_source(view: FilesystemView, raw: str) -> None:
    """Refuse a missing source: syncing from nothing would empty DEST."""
    try:
        view.stat("/")
    except (FileNotFoundError, NotADirectoryError):
        raise click.ClickException(f"Source not found: {raw}")


def _open_writer(ctx, ep: Endpoint, *, create: bool, message: str | None) -> FilesystemView:
    """Open *ep* as a sync destination."""
    if not ep.is_repo:
        return LocalFS(ep.path)
    repo_path = _require_repo(ctx)
    try:
        return GitTreeFS.open_branch(
            repo_path, ep.ref or _default_branch(repo_path),
            root=ep.path, create=create, message=message,
        )
    except (FileNotFoundError, NotGitRepository, ValueError) as exc:
        raise click.ClickException(str(exc))


# ---------------------------------------------------------------------------
# Main group
# ---------------------------------------------------------------------------

@click.group()
@click.option("--repo", "-r", type=click.Path(), envvar="TREESYNC_REPO",
              help="Path to bare git repository (or set TREESYNC_REPO).",
              expose_value=False, callback=_store_repo, is_eager=True)
@click.option("-v", "--verbose", is_flag=True, help="Verbose output on stderr.")
@click.pass_context
def main(ctx, verbose):
    """treesync — make one file tree identical to another.

    Trees live on disk or in bare git repositories.

    \b
    Quick start:
      treesync -r site.git sync ./public :        (disk → repo)
      treesync -r site.git sync main:docs ./docs  (repo → disk)
      treesync -r site.git diff ./public :

    \b
    Repo paths are written [ref]:path (e.g. :path/to/dir, main:site).
    Set TREESYNC_REPO to avoid passing --repo on every call.
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    if verbose:
        logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
