"""Tests for the treesync CLI."""

import pytest
from dulwich.repo import Repo

from treesync import GitTreeFS
from treesync.cli import main
from treesync.cli._helpers import _parse_endpoint


def lines(output):
    return [line for line in output.splitlines() if line]


@pytest.fixture
def synced_repo(runner, repo_path, local_dir):
    """A repo whose 'main' branch holds a copy of local_dir."""
    r = runner.invoke(main, ["sync", "--repo", repo_path, str(local_dir), ":"])
    assert r.exit_code == 0, r.output
    return repo_path


# ---------------------------------------------------------------------------
# Endpoint parsing
# ---------------------------------------------------------------------------

class TestParseEndpoint:
    def test_repo_root(self):
        ep = _parse_endpoint(":")
        assert ep.is_repo and ep.ref is None and ep.path == "/"

    def test_repo_path(self):
        ep = _parse_endpoint(":docs/site")
        assert ep.is_repo and ep.path == "docs/site"

    def test_ref_and_path(self):
        ep = _parse_endpoint("v1:site")
        assert ep.is_repo and ep.ref == "v1" and ep.path == "site"

    def test_local_path(self):
        ep = _parse_endpoint("./out")
        assert not ep.is_repo and ep.path == "./out"

    def test_local_path_with_colon_after_slash(self):
        assert not _parse_endpoint("./a:b").is_repo

    def test_drive_letter_stays_local(self):
        assert not _parse_endpoint("C:\\data").is_repo


# ---------------------------------------------------------------------------
# sync
# ---------------------------------------------------------------------------

class TestSync:
    def test_disk_to_repo(self, runner, repo_path, local_dir):
        r = runner.invoke(main, ["sync", "--repo", repo_path, str(local_dir), ":"])
        assert r.exit_code == 0, r.output
        assert lines(r.output) == ["+ /a.txt", "+ /b.txt", "+ /sub/c.txt"]
        fs = GitTreeFS.snapshot(repo_path)
        assert fs.stat("/sub/c.txt").size == 5

    def test_resync_is_silent(self, runner, synced_repo, local_dir):
        r = runner.invoke(main, ["sync", "--repo", synced_repo, str(local_dir), ":"])
        assert r.exit_code == 0, r.output
        assert r.output == ""

    def test_repo_to_disk(self, runner, synced_repo, tmp_path):
        out = tmp_path / "out"
        r = runner.invoke(main, ["sync", "--repo", synced_repo, "main:sub", str(out)])
        assert r.exit_code == 0, r.output
        assert lines(r.output) == ["+ /c.txt"]
        assert (out / "c.txt").read_text() == "gamma"

    def test_repo_to_repo(self, runner, synced_repo):
        r = runner.invoke(main, ["sync", "--repo", synced_repo, "main:sub", "backup:"])
        assert r.exit_code == 0, r.output
        fs = GitTreeFS.snapshot(synced_repo, "backup")
        assert [e.name for e in fs.readdir("/")] == ["c.txt"]

    def test_change_and_remove(self, runner, synced_repo, local_dir):
        (local_dir / "a.txt").write_text("ALPHA!")
        (local_dir / "b.txt").unlink()
        r = runner.invoke(main, ["sync", "--repo", synced_repo, str(local_dir), ":"])
        assert r.exit_code == 0, r.output
        assert lines(r.output) == ["~ /a.txt", "- /b.txt"]

    def test_commit_message(self, runner, repo_path, local_dir):
        r = runner.invoke(main, [
            "sync", "--repo", repo_path, "-m", "Nightly", str(local_dir), ":",
        ])
        assert r.exit_code == 0, r.output
        repo = Repo(repo_path)
        assert repo[repo.refs[b"HEAD"]].message == b"Nightly\n"

    def test_no_delete(self, runner, synced_repo, local_dir):
        (local_dir / "b.txt").unlink()
        r = runner.invoke(main, [
            "-v", "sync", "--repo", synced_repo, "--no-delete", str(local_dir), ":",
        ])
        assert r.exit_code == 0, r.output
        assert "- /b.txt" not in r.output
        assert "Skipped /b.txt" in r.output
        assert GitTreeFS.snapshot(synced_repo).stat("/b.txt").is_file

    def test_exclude(self, runner, repo_path, local_dir):
        (local_dir / "debug.log").write_text("log")
        r = runner.invoke(main, [
            "sync", "--repo", repo_path, "--exclude", "*.log", str(local_dir), ":",
        ])
        assert r.exit_code == 0, r.output
        assert "debug.log" not in r.output
        with pytest.raises(FileNotFoundError):
            GitTreeFS.snapshot(repo_path).stat("/debug.log")

    def test_exclude_from(self, runner, repo_path, local_dir, tmp_path):
        pfile = tmp_path / "excludes"
        pfile.write_text("sub/\n")
        r = runner.invoke(main, [
            "sync", "--repo", repo_path, "--exclude-from", str(pfile), str(local_dir), ":",
        ])
        assert r.exit_code == 0, r.output
        assert lines(r.output) == ["+ /a.txt", "+ /b.txt"]

    def test_dry_run(self, runner, synced_repo, local_dir):
        (local_dir / "new.txt").write_text("new")
        head = GitTreeFS.snapshot(synced_repo).commit_hash
        r = runner.invoke(main, ["sync", "--repo", synced_repo, "-n", str(local_dir), ":"])
        assert r.exit_code == 0, r.output
        assert lines(r.output) == ["+ /new.txt"]
        assert GitTreeFS.snapshot(synced_repo).commit_hash == head

    def test_dry_run_new_branch(self, runner, synced_repo, local_dir):
        r = runner.invoke(main, [
            "sync", "--repo", synced_repo, "--dry-run", str(local_dir), "draft:",
        ])
        assert r.exit_code == 0, r.output
        assert len(lines(r.output)) == 3

    def test_repo_from_env(self, runner, repo_path, local_dir):
        r = runner.invoke(
            main, ["sync", str(local_dir), ":"], env={"TREESYNC_REPO": repo_path},
        )
        assert r.exit_code == 0, r.output
        assert GitTreeFS.snapshot(repo_path).stat("/a.txt").is_file

    def test_verbose_summary(self, runner, repo_path, local_dir):
        r = runner.invoke(main, ["-v", "sync", "--repo", repo_path, str(local_dir), ":"])
        assert r.exit_code == 0, r.output
        assert "Synced 3 change(s)" in r.output


class TestSyncErrors:
    def test_no_repo(self, runner, local_dir):
        r = runner.invoke(main, ["sync", str(local_dir), ":"], env={"TREESYNC_REPO": None})
        assert r.exit_code != 0
        assert "No repository specified" in r.output

    def test_neither_side_is_repo(self, runner, repo_path, local_dir, tmp_path):
        r = runner.invoke(main, ["sync", "--repo", repo_path, str(local_dir), str(tmp_path / "o")])
        assert r.exit_code != 0
        assert "Neither argument is a repo path" in r.output

    def test_missing_source(self, runner, repo_path, tmp_path):
        r = runner.invoke(main, ["sync", "--repo", repo_path, str(tmp_path / "nope"), ":"])
        assert r.exit_code != 0
        assert "Source not found" in r.output

    def test_missing_source_in_repo(self, runner, synced_repo, tmp_path):
        r = runner.invoke(main, ["sync", "--repo", synced_repo, ":nope", str(tmp_path / "o")])
        assert r.exit_code != 0
        assert "Source not found" in r.output

    def test_unknown_ref(self, runner, synced_repo, tmp_path):
        r = runner.invoke(main, ["sync", "--repo", synced_repo, "nope:", str(tmp_path / "o")])
        assert r.exit_code != 0
        assert "Unknown ref: nope" in r.output

    def test_wrong_argument_count(self, runner, repo_path, local_dir):
        r = runner.invoke(main, ["sync", "--repo", repo_path, str(local_dir)])
        assert r.exit_code != 0
        assert "requires SRC and DEST" in r.output

    def test_not_a_repository(self, runner, local_dir, tmp_path):
        plain = tmp_path / "plain"
        plain.mkdir()
        r = runner.invoke(main, ["sync", "--repo", str(plain), str(local_dir), ":"])
        assert r.exit_code == 1
        assert isinstance(r.exception, SystemExit)
        assert "No git repository" in r.output

    def test_not_a_repository_source(self, runner, tmp_path):
        plain = tmp_path / "plain"
        plain.mkdir()
        r = runner.invoke(main, ["diff", "--repo", str(plain), ":", str(tmp_path / "o")])
        assert r.exit_code == 1
        assert isinstance(r.exception, SystemExit)
        assert "No git repository" in r.output

    def test_ref_without_url(self, runner, repo_path, local_dir):
        r = runner.invoke(main, ["sync", "--repo", repo_path, "--ref", "main", str(local_dir), ":"])
        assert r.exit_code != 0
        assert "--ref only applies with --url" in r.output

    def test_no_create(self, runner, repo_path, local_dir):
        r = runner.invoke(main, ["sync", "--repo", repo_path, "--no-create", str(local_dir), ":"])
        assert r.exit_code != 0
        assert "Repository not found" in r.output


class TestSyncFromUrl:
    def test_url_to_disk(self, runner, synced_repo, tmp_path):
        cache = str(tmp_path / "cache.git")
        out = tmp_path / "site"
        r = runner.invoke(main, ["sync", "--repo", cache, "--url", synced_repo, str(out)])
        assert r.exit_code == 0, r.output
        assert (out / "sub" / "c.txt").read_text() == "gamma"

    def test_url_to_repo(self, runner, synced_repo, tmp_path):
        cache = str(tmp_path / "cache.git")
        r = runner.invoke(main, [
            "sync", "--repo", cache, "--url", synced_repo, "--ref", "main", "mirror:",
        ])
        assert r.exit_code == 0, r.output
        assert GitTreeFS.snapshot(cache, "mirror").stat("/a.txt").is_file

    def test_url_unknown_ref(self, runner, synced_repo, tmp_path):
        r = runner.invoke(main, [
            "sync", "--repo", str(tmp_path / "cache.git"), "--url", synced_repo,
            "--ref", "nope", str(tmp_path / "o"),
        ])
        assert r.exit_code != 0
        assert "Unknown ref" in r.output

    def test_url_takes_only_dest(self, runner, synced_repo, tmp_path, local_dir):
        r = runner.invoke(main, [
            "sync", "--repo", str(tmp_path / "cache.git"), "--url", synced_repo,
            str(local_dir), str(tmp_path / "o"),
        ])
        assert r.exit_code != 0
        assert "give only DEST" in r.output


# ---------------------------------------------------------------------------
# diff
# ---------------------------------------------------------------------------

class TestDiff:
    def test_diff_prefixes(self, runner, synced_repo, local_dir):
        (local_dir / "a.txt").write_text("ALPHA!")
        (local_dir / "b.txt").unlink()
        (local_dir / "d.txt").write_text("delta")
        r = runner.invoke(main, ["diff", "--repo", synced_repo, str(local_dir), ":"])
        assert r.exit_code == 0, r.output
        assert lines(r.output) == ["~ /a.txt", "+ /d.txt", "- /b.txt"]

    def test_diff_changes_nothing(self, runner, synced_repo, local_dir):
        (local_dir / "d.txt").write_text("delta")
        head = GitTreeFS.snapshot(synced_repo).commit_hash
        runner.invoke(main, ["diff", "--repo", synced_repo, str(local_dir), ":"])
        assert GitTreeFS.snapshot(synced_repo).commit_hash == head

    def test_diff_identical(self, runner, synced_repo, local_dir):
        r = runner.invoke(main, ["diff", "--repo", synced_repo, str(local_dir), ":"])
        assert r.exit_code == 0, r.output
        assert r.output == ""

    def test_diff_local_dirs(self, runner, local_dir, tmp_path):
        other = tmp_path / "other"
        other.mkdir()
        (other / "a.txt").write_text("alpha")
        r = runner.invoke(main, ["diff", str(local_dir), str(other)])
        assert r.exit_code == 0, r.output
        assert lines(r.output) == ["+ /b.txt", "+ /sub/c.txt"]
