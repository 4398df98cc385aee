"""The diff and sync commands."""

from __future__ import annotations

import click
from dulwich.errors import NotGitRepository

from .._exclude import ExcludeFilter
from .._types import ApplyStatus, ChangeOp, SyncOptions
from ..diff import diff as diff_trees
from ..exceptions import StaleSnapshotError, TypeMismatchError
from ..gittree import GitTreeFS
from ..sync import apply_changes
from ._helpers import (
    CHANGE_PREFIX,
    main,
    _open_reader,
    _open_writer,
    _parse_endpoint,
    _repo_option,
    _require_repo,
    _require_source,
    _status,
)


def _echo_change(change):
    click.echo(f"{CHANGE_PREFIX[change.op]} {change.path}")


@main.command()
@_repo_option
@click.argument("src")
@click.argument("dest")
@click.pass_context
def diff(ctx, src, dest):
    """Show what sync would change to make DEST match SRC.

    \b
    Lines are prefixed + (add), ~ (change) or - (remove):
        treesync -r data.git diff ./local :backup
    """
    from_fs = _open_reader(ctx, _parse_endpoint(src))
    _require_source(from_fs, src)
    to_fs = _open_reader(ctx, _parse_endpoint(dest), missing_ok=True)
    try:
        for change in diff_trees(from_fs, to_fs):
            _echo_change(change)
    except (NotADirectoryError, PermissionError, TypeMismatchError) as exc:
        raise click.ClickException(str(exc))


@main.command()
@_repo_option
@click.argument("args", nargs=-1, required=True)
@click.option("-m", "--message", default=None,
              help="Commit message when DEST is a repo path.")
@click.option("--no-delete", "no_delete", is_flag=True, default=False,
              help="Never remove anything from DEST.")
@click.option("--exclude", multiple=True,
              help="Exclude files matching pattern (gitignore syntax, repeatable).")
@click.option("--exclude-from", "exclude_from", type=click.Path(exists=True),
              help="Read exclude patterns from file.")
@click.option("-n", "--dry-run", "dry_run", is_flag=True, default=False,
              help="Show what would change without changing anything.")
@click.option("--url", default=None,
              help="Fetch SRC from this remote git URL (only DEST is given).")
@click.option("--ref", default=None,
              help="Ref to sync from --url (default: the remote's HEAD).")
@click.option("--no-create", "no_create", is_flag=True, default=False,
              help="Do not auto-create the repository if it doesn't exist.")
@click.pass_context
def sync(ctx, args, message, no_delete, exclude, exclude_from, dry_run, url, ref, no_create):
    """Make DEST identical to SRC (like rsync --delete).

    \b
    Either side may be a local path or a repo path ([ref]:path):
        treesync -r data.git sync ./local :backup      (disk → repo)
        treesync -r data.git sync main:backup ./out    (repo → disk)
        treesync -r data.git sync v1:site draft:site   (repo → repo)

    \b
    With --url, SRC is fetched into the repo first and only DEST is given:
        treesync -r cache.git sync --url https://host/site.git ./site
    """
    if url is not None:
        if len(args) != 1:
            raise click.ClickException("With --url, give only DEST")
        dest_ep = _parse_endpoint(args[0])
        repo_path = _require_repo(ctx)
        try:
            from_fs = GitTreeFS.from_url(repo_path, url, ref)
        except KeyError:
            raise click.ClickException(f"Unknown ref on {url}: {ref or 'HEAD'}")
        except NotGitRepository as exc:
            raise click.ClickException(str(exc))
    else:
        if ref is not None:
            raise click.ClickException("--ref only applies with --url")
        if len(args) != 2:
            raise click.ClickException("sync requires SRC and DEST")
        src_ep, dest_ep = (_parse_endpoint(a) for a in args)
        if not src_ep.is_repo and not dest_ep.is_repo:
            raise click.ClickException(
                "Neither argument is a repo path — prefix repo paths with ':'"
            )
        from_fs = _open_reader(ctx, src_ep)
        _require_source(from_fs, src_ep.raw)

    excl = None
    if exclude or exclude_from:
        excl = ExcludeFilter(patterns=exclude, exclude_from=exclude_from)
    options = SyncOptions(no_delete=no_delete, ignore=excl)

    try:
        if dry_run:
            to_fs = _open_reader(ctx, dest_ep, missing_ok=True)
            blocked = None
            for change in diff_trees(from_fs, to_fs):
                if options.is_ignored(change):
                    blocked = change.path if change.op == ChangeOp.REMOVE else None
                    continue
                pending, blocked = blocked, None
                if no_delete and change.op == ChangeOp.REMOVE:
                    blocked = change.path
                    continue
                if change.path != pending:
                    _echo_change(change)
            return

        to_fs = _open_writer(ctx, dest_ep, create=not no_create, message=message)
        applied = degraded = 0
        for result in apply_changes(from_fs, to_fs, options):
            if result.status == ApplyStatus.SKIPPED:
                _status(ctx, f"Skipped {result.change.path}: {result.detail}")
                continue
            _echo_change(result.change)
            applied += 1
            if result.degraded:
                degraded += 1
        if degraded and not isinstance(to_fs, GitTreeFS):
            click.echo(
                f"WARNING: modification times not preserved for {degraded} change(s)",
                err=True,
            )
        _status(ctx, f"Synced {applied} change(s) -> {dest_ep.raw}")
    except (NotADirectoryError, IsADirectoryError, PermissionError, TypeMismatchError) as exc:
        raise click.ClickException(str(exc))
    except StaleSnapshotError:
        raise click.ClickException("Branch modified concurrently — retry")
