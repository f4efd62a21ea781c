import pytest

import provisor.steps as steps_module
from provisor import InvalidPlanError, Orchestrator, RunStatus, StepRunner, StepStatus
from provisor.plans import PlanSpec, available_plans, load_plan_file, resolve_plan


async def _no_sleep(delay):
    return None


@pytest.fixture
def snap_cmake(monkeypatch, adapters):
    """Report an old cmake until the snap has been installed."""

    async def fake_tool_version(binary, extra_paths=()):
        return (3, 30, 1) if "cmake" in adapters.snaps.installed else (3, 22, 1)

    monkeypatch.setattr(steps_module, "tool_version", fake_tool_version)


def test_builtin_plans_are_available():
    plans = available_plans()
    assert set(plans) == {"adaptix", "workstation"}
    assert resolve_plan("adaptix").name == "adaptix"


@pytest.mark.parametrize("name", ["adaptix", "workstation"])
def test_builtin_plans_build_into_valid_graphs(name, host):
    plan = resolve_plan(name).build(host)
    assert len(plan) == len(resolve_plan(name).steps)
    assert plan.order[0] in plan


def test_unknown_plan_is_rejected():
    with pytest.raises(InvalidPlanError):
        resolve_plan("does-not-exist")


@pytest.mark.asyncio
async def test_adaptix_plan_end_to_end_is_idempotent(host, adapters, snap_cmake):
    adapters.builder.artifacts.update(
        {
            "server": "dist/adaptixserver",
            "extenders": "dist/extenders",
            "client": "dist/AdaptixClient",
        }
    )
    plan = resolve_plan("adaptix").build(host)
    orchestrator = Orchestrator(runner=StepRunner(sleep=_no_sleep))

    first = await orchestrator.run(plan, host)

    assert first.status is RunStatus.SUCCESS, [r.error for r in first.failures()]
    install_dir = host.install_root / "Adaptix_C2_Framework"
    assert (install_dir / "adaptix-server").is_file()
    assert (install_dir / "adaptix-client").is_file()
    assert (install_dir / "server.rsa.crt").is_file()
    assert (install_dir / "beacon.rsa.key").is_file()
    assert (install_dir / "extensions").is_dir()
    assert not (host.work_dir / "AdaptixC2").exists()
    assert len(adapters.certificates.issued) == 2
    assert len(adapters.vcs.clones) == 2
    assert adapters.builder.search_paths == [("/snap/bin",)] * 3

    second = await orchestrator.run(plan, host)

    assert second.status is RunStatus.SUCCESS
    assert [r.step_id for r in second.results if r.status is not StepStatus.SKIPPED] == []
    assert len(adapters.vcs.clones) == 2
    assert len(adapters.builder.runs) == 3


@pytest.mark.asyncio
async def test_workstation_dry_run_touches_nothing(host, adapters):
    plan = resolve_plan("workstation").build(host)

    report = await Orchestrator().run(plan, host, dry_run=True)

    assert len(report.results) == len(plan)
    assert adapters.packages.calls == []
    assert adapters.fetcher.calls == []
    assert not (host.home / "Tools").exists()
    assert report.result_for("packages").status is StepStatus.PENDING


def test_plan_notes_are_expanded(host):
    plan = resolve_plan("adaptix").build(host)
    assert any(str(host.install_root) in note for note in plan.notes)


def test_load_plan_file(tmp_path):
    path = tmp_path / "tools.yaml"
    path.write_text(
        """
description: Tool folders
steps:
  - kind: directories
    id: dirs
    paths: ["{home}/Tools"]
  - kind: history
    id: history
    path: "{home}/.zsh_history"
    lines: ["cd Tools"]
    depends_on: [dirs]
    on_failure: continue_independent
"""
    )

    spec = load_plan_file(path)

    assert isinstance(spec, PlanSpec)
    assert spec.name == "tools"
    assert [s.kind for s in spec.steps] == ["directories", "history"]
    assert resolve_plan(str(path)).steps[1].on_failure.value == "continue_independent"


def test_invalid_plan_files_raise_invalid_plan_error(tmp_path, host):
    bad_kind = tmp_path / "bad.yaml"
    bad_kind.write_text("steps:\n  - kind: teleport\n    id: t\n")
    cyclic = tmp_path / "cyclic.yaml"
    cyclic.write_text(
        """
steps:
  - {kind: directories, id: a, paths: ["{home}/a"], depends_on: [b]}
  - {kind: directories, id: b, paths: ["{home}/b"], depends_on: [a]}
"""
    )

    with pytest.raises(InvalidPlanError):
        load_plan_file(bad_kind)
    with pytest.raises(InvalidPlanError):
        load_plan_file(tmp_path / "absent.yaml")
    with pytest.raises(InvalidPlanError) as exc_info:
        load_plan_file(cyclic).build(host)
    assert set(exc_info.value.step_ids) == {"a", "b"}


def test_unknown_placeholder_names_the_step(tmp_path, host):
    path = tmp_path / "typo.yaml"
    path.write_text(
        """
steps:
  - {kind: directories, id: dirs, paths: ["{home}/Tools"]}
  - {kind: download, id: fetch, url: "https://example.com/x", destination: "{hme}/x"}
"""
    )

    with pytest.raises(InvalidPlanError) as exc_info:
        load_plan_file(path).build(host)
    assert exc_info.value.step_ids == ("fetch",)
