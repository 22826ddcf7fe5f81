"""
Integration tests for scenario worktree lifecycle against a real git binary.

Coverage:
- init at the base revision on the work branch with the broken series applied
- idempotent init and destructive reset to the solved stage
- abort and error naming when a patch in the series conflicts
- single and bulk worktree removal
- the solve command rebuilding a dirty worktree at the solved stage
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from democtl.domain.catalog import resolve
from democtl.ui.cli import run_cli
from democtl.workspace.git import GitClient
from democtl.workspace.patches import PatchApplyError
from democtl.workspace.worktree import WorkspaceError, WorktreeManager

pytestmark = pytest.mark.integration

_APP_FILE = "fider/search.go"


@pytest.fixture
def demo_repo(tmp_path: Path, isolated_git_env: None, run_git) -> Path:
    repo = tmp_path / "repo"
    (repo / "fider").mkdir(parents=True)
    run_git(repo, "init", "--quiet", "--initial-branch=main")
    (repo / _APP_FILE).write_text("limit = 10\n", encoding="utf-8")
    (repo / "README.md").write_text("demo\n", encoding="utf-8")
    run_git(repo, "add", ".")
    run_git(repo, "commit", "--quiet", "-m", "base")
    (repo / "demo").mkdir()
    return repo.resolve()


def _head(repo: Path, run_git) -> str:
    return run_git(repo, "rev-parse", "HEAD").stdout.strip()


def _write_series(
    repo: Path,
    run_git,
    *,
    base: str,
    out_dir: Path,
    edits: list[tuple[str, str]],
    branch: str,
    start_number: int = 1,
) -> list[Path]:
    """Commit ``edits`` on a throwaway branch from ``base`` and export them as patches."""

    run_git(repo, "switch", "--quiet", "-c", branch, base)
    for index, (relative, content) in enumerate(edits, start=1):
        target = repo / relative
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")
        run_git(repo, "add", relative)
        run_git(repo, "commit", "--quiet", "-m", f"{branch} step {index}")
    out_dir.mkdir(parents=True, exist_ok=True)
    run_git(
        repo,
        "format-patch",
        "--quiet",
        f"--start-number={start_number}",
        "-o",
        str(out_dir),
        f"{base}..HEAD",
    )
    run_git(repo, "switch", "--quiet", "main")
    return sorted(out_dir.glob("*.patch"))


def _scenario(repo: Path, write_scenario, base: str, *, slug: str = "login"):
    write_scenario(
        repo,
        scenario_type="engineering",
        track="eng",
        slug=slug,
        git={"base_ref": base, "work_branch": f"demo/eng-{slug}"},
    )
    return resolve(repo, f"eng/{slug}")


def _manager(repo: Path) -> WorktreeManager:
    return WorktreeManager(repo, fetch_remote="")


def test_init_checks_out_work_branch_with_broken_series(
    demo_repo: Path, write_scenario, run_git
) -> None:
    base = _head(demo_repo, run_git)
    scenario = _scenario(demo_repo, write_scenario, base)
    _write_series(
        demo_repo,
        run_git,
        base=base,
        out_dir=scenario.directory / "patches" / "broken",
        edits=[(_APP_FILE, "limit = 0\n"), ("fider/notes.md", "broken on purpose\n")],
        branch="make-broken",
    )

    result = _manager(demo_repo).init(scenario)

    worktree = scenario.directory / "worktree"
    assert result.changed
    assert result.patches_applied == 2
    assert (worktree / _APP_FILE).read_text(encoding="utf-8") == "limit = 0\n"
    assert run_git(worktree, "rev-parse", "--abbrev-ref", "HEAD").stdout.strip() == "demo/eng-login"
    assert run_git(worktree, "rev-list", "--count", f"{base}..HEAD").stdout.strip() == "2"
    assert run_git(worktree, "status", "--porcelain").stdout.strip() == ""

    again = _manager(demo_repo).init(scenario)
    assert not again.changed


def test_fetch_without_remote_is_only_a_warning(demo_repo: Path, write_scenario, run_git) -> None:
    scenario = _scenario(demo_repo, write_scenario, _head(demo_repo, run_git))
    manager = WorktreeManager(demo_repo, fetch_remote="origin")

    manager.init(scenario)

    assert manager.warnings.for_operation("git fetch")
    assert (scenario.directory / "worktree" / _APP_FILE).exists()


def test_reset_to_solved_discards_local_edits(demo_repo: Path, write_scenario, run_git) -> None:
    base = _head(demo_repo, run_git)
    scenario = _scenario(demo_repo, write_scenario, base)
    _write_series(
        demo_repo,
        run_git,
        base=base,
        out_dir=scenario.directory / "patches" / "broken",
        edits=[(_APP_FILE, "limit = 0\n")],
        branch="make-broken",
    )
    _write_series(
        demo_repo,
        run_git,
        base=base,
        out_dir=scenario.directory / "patches" / "solved",
        edits=[(_APP_FILE, "limit = 25\n")],
        branch="make-solved",
    )
    manager = _manager(demo_repo)
    manager.init(scenario)
    worktree = scenario.directory / "worktree"
    (worktree / _APP_FILE).write_text("limit = -1\n", encoding="utf-8")
    (worktree / "fider" / "scratch.txt").write_text("wip\n", encoding="utf-8")
    (worktree / "build").mkdir()

    result = manager.reset_to_stage(scenario, "solved")

    assert result.patches_applied == 1
    assert (worktree / _APP_FILE).read_text(encoding="utf-8") == "limit = 25\n"
    assert not (worktree / "fider" / "scratch.txt").exists()
    assert not (worktree / "build").exists()
    assert run_git(worktree, "status", "--porcelain").stdout.strip() == ""

    manager.reset_to_stage(scenario, "broken")
    assert (worktree / _APP_FILE).read_text(encoding="utf-8") == "limit = 0\n"


def test_conflicting_patch_aborts_and_is_named(demo_repo: Path, write_scenario, run_git) -> None:
    base = _head(demo_repo, run_git)
    scenario = _scenario(demo_repo, write_scenario, base)
    broken_dir = scenario.directory / "patches" / "broken"
    _write_series(
        demo_repo, run_git, base=base, out_dir=broken_dir, edits=[(_APP_FILE, "limit = 0\n")], branch="one"
    )
    _write_series(
        demo_repo,
        run_git,
        base=base,
        out_dir=broken_dir,
        edits=[(_APP_FILE, "limit = 5\n")],
        branch="two",
        start_number=2,
    )
    manager = _manager(demo_repo)

    with pytest.raises(PatchApplyError) as excinfo:
        manager.init(scenario)

    worktree = scenario.directory / "worktree"
    assert excinfo.value.patch_file.name.startswith("0002-")
    assert "0002-" in str(excinfo.value)
    assert not GitClient(demo_repo).am_in_progress(worktree)
    assert (worktree / _APP_FILE).read_text(encoding="utf-8") == "limit = 0\n"

    # The series is broken for every stage rebuild too, and the session is aborted each time.
    with pytest.raises(PatchApplyError):
        manager.reset_to_stage(scenario, "broken")
    assert not GitClient(demo_repo).am_in_progress(worktree)


def test_reset_requires_init(demo_repo: Path, write_scenario, run_git) -> None:
    scenario = _scenario(demo_repo, write_scenario, _head(demo_repo, run_git))

    with pytest.raises(WorkspaceError, match="use init first"):
        _manager(demo_repo).reset_to_stage(scenario, "broken")


def test_remove_and_remove_all(demo_repo: Path, write_scenario, run_git) -> None:
    base = _head(demo_repo, run_git)
    login = _scenario(demo_repo, write_scenario, base, slug="login")
    search = _scenario(demo_repo, write_scenario, base, slug="search")
    notify = _scenario(demo_repo, write_scenario, base, slug="notify")
    manager = _manager(demo_repo)
    for scenario in (login, search, notify):
        manager.init(scenario)

    removed_one = manager.remove(login)
    assert removed_one.changed
    assert not (login.directory / "worktree").exists()

    # A stray directory git no longer tracks is still cleaned up.
    run_git(demo_repo, "worktree", "remove", "--force", str(notify.directory / "worktree"))
    stray = notify.directory / "worktree"
    stray.mkdir()
    (stray / "leftover.txt").write_text("x\n", encoding="utf-8")

    removed = manager.remove_all()

    assert removed == (
        (notify.directory / "worktree").resolve(),
        (search.directory / "worktree").resolve(),
    )
    assert not (search.directory / "worktree").exists()
    assert not stray.exists()
    listing = run_git(demo_repo, "worktree", "list", "--porcelain").stdout
    assert listing.count("worktree ") == 1
    assert manager.remove_all() == ()


def test_solve_command_rebuilds_worktree_at_solved_stage(
    demo_repo: Path, write_scenario, run_git, capsys
) -> None:
    base = _head(demo_repo, run_git)
    write_scenario(
        demo_repo,
        scenario_type="engineering",
        track="eng",
        slug="login",
        git={"base_ref": base, "work_branch": "demo/eng-login"},
        checks={"version": 1, "stages": {"solved": {"verify": [{"type": "dns.resolve"}]}}},
    )
    scenario = resolve(demo_repo, "eng/login")
    _write_series(
        demo_repo,
        run_git,
        base=base,
        out_dir=scenario.directory / "patches" / "solved",
        edits=[(_APP_FILE, "limit = 25\n")],
        branch="make-solved",
    )
    _manager(demo_repo).init(scenario)
    worktree = scenario.directory / "worktree"
    (worktree / _APP_FILE).write_text("limit = -1\n", encoding="utf-8")

    code = run_cli(["solve", "eng/login", "--json", "--repo-root", str(demo_repo)])

    payload = json.loads(capsys.readouterr().out)
    assert code == 0
    assert (payload["patches_applied"], payload["verified"]) == (1, True)
    assert (worktree / _APP_FILE).read_text(encoding="utf-8") == "limit = 25\n"
    assert run_git(worktree, "status", "--porcelain").stdout.strip() == ""
