"""Tests for the pipeline runner orchestration helpers."""

from __future__ import annotations

import pytest

from play_release.app.pipeline import (
    PipelineContext,
    PipelineHooks,
    PipelineRunner,
    PipelineStep,
    build_promote_steps,
    build_publish_steps,
)
from play_release.app.pipeline_state import PipelineState
from play_release.errors import PublishError, TransactionError
from play_release.platforms import PublishSummary

from conftest import RecordingService


def test_runner_invokes_hooks_and_propagates_errors() -> None:
    events: list[str] = []

    def step_a(_: object) -> None:
        events.append("run:a")

    def step_b(_: object) -> None:
        events.append("run:b")
        raise RuntimeError("boom")

    hooks = PipelineHooks(
        before_step=lambda name, _: events.append(f"before:{name}"),
        after_step=lambda name, _: events.append(f"after:{name}"),
        on_error=lambda name, _, exc: events.append(f"error:{name}:{type(exc).__name__}"),
    )

    steps = [
        PipelineStep("a", step_a),
        PipelineStep("b", step_b, depends_on=("a",)),
        PipelineStep("c", lambda _: events.append("run:c"), depends_on=("b",)),
    ]
    runner = PipelineRunner(steps)

    with pytest.raises(RuntimeError):
        runner.run(object(), hooks=hooks)  # type: ignore[arg-type]

    assert events == [
        "before:a",
        "run:a",
        "after:a",
        "before:b",
        "run:b",
        "error:b:RuntimeError",
    ]


def test_runner_tags_publish_errors_with_step_name() -> None:
    def failing(_: object) -> None:
        raise TransactionError("rejected")

    runner = PipelineRunner([PipelineStep("commit", failing)])

    with pytest.raises(TransactionError) as excinfo:
        runner.run(object())  # type: ignore[arg-type]

    assert excinfo.value.step == "commit"
    assert str(excinfo.value).startswith("[commit] rejected")


def test_runner_keeps_existing_step_name() -> None:
    def failing(_: object) -> None:
        raise PublishError("inner", step="resolveArtifacts")

    runner = PipelineRunner([PipelineStep("uploadArtifact", failing)])

    with pytest.raises(PublishError) as excinfo:
        runner.run(object())  # type: ignore[arg-type]

    assert excinfo.value.step == "resolveArtifacts"


def test_runner_rejects_missing_dependencies() -> None:
    runner = PipelineRunner([PipelineStep("commit", lambda _: None, depends_on=("createEdit",))])

    with pytest.raises(RuntimeError, match="depends on missing steps: createEdit"):
        runner.run(object())  # type: ignore[arg-type]


@pytest.mark.parametrize(
    ("steps", "message"),
    [
        (build_promote_steps(clear_source=True), "source track"),
        (build_publish_steps(sync_metadata=True, add_changelog=False), "metadata root"),
    ],
)
def test_steps_reject_incomplete_context(steps: list[PipelineStep], message: str) -> None:
    service = RecordingService()
    state = PipelineState.initialize("com.example.app", [step.name for step in steps])
    context = PipelineContext(
        service=service,
        state=state,
        summary=PublishSummary(package_name="com.example.app", edit_id="", track="beta"),
        track="beta",
    )

    with pytest.raises(RuntimeError, match=message):
        PipelineRunner(steps).run(context)
