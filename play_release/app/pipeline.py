"""Ordered edit pipelines: publish artifacts and metadata, or promote between tracks."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Sequence

from ..errors import MetadataReadError, PublishError, ResourceNotFoundError, TransactionError, UsageError
from ..platforms import PublishSummary, RemoteEditService, TrackUpdate
from ..platforms.base import ROLLOUT_TRACK, release_track, validate_user_fraction
from ..services import Artifact, MetadataSynchronizer, read_package_name, resolve_artifacts
from ..utils.file_helper import iter_directories
from ..utils.logging import get_logger
from .pipeline_state import PipelineState

LOGGER = get_logger(__name__)

METADATA_DIRNAME = "metadata"


@dataclass(slots=True)
class PipelineContext:
    """Mutable context shared between pipeline steps."""

    service: RemoteEditService
    state: PipelineState
    summary: PublishSummary
    track: str
    user_fraction: float | None = None
    artifacts: list[Artifact] = field(default_factory=list)
    metadata_root: Path | None = None
    changelog_file: Path | None = None
    changelog_language: str = "en-US"
    source_track: str | None = None
    promoted_version_codes: list[int] = field(default_factory=list)

    @property
    def package_name(self) -> str:
        return self.state.package_name

    @property
    def edit_id(self) -> str:
        return self.state.require_edit()


@dataclass(slots=True)
class PipelineStep:
    name: str
    handler: Callable[[PipelineContext], None]
    depends_on: tuple[str, ...] = ()


@dataclass(slots=True)
class PipelineHooks:
    before_step: Callable[[str, PipelineContext], None] | None = None
    after_step: Callable[[str, PipelineContext], None] | None = None
    on_error: Callable[[str, PipelineContext, BaseException], None] | None = None


class PipelineRunner:
    """Executes steps in order and stops at the first failure.

    A failing step's ``PublishError`` is tagged with the step name when it
    has none; every exception is re-raised unchanged otherwise.
    """

    def __init__(self, steps: Sequence[PipelineStep]) -> None:
        self._step_map: Dict[str, PipelineStep] = {step.name: step for step in steps}
        self._order = [step.name for step in steps]

    @property
    def steps(self) -> list[PipelineStep]:
        return [self._step_map[name] for name in self._order]

    @property
    def step_names(self) -> list[str]:
        return list(self._order)

    def run(self, context: PipelineContext, *, hooks: PipelineHooks | None = None) -> None:
        executed: set[str] = set()
        for name in self._order:
            step = self._step_map[name]
            if any(dep not in executed for dep in step.depends_on):
                missing = ", ".join(dep for dep in step.depends_on if dep not in executed)
                raise RuntimeError(f"Step '{name}' depends on missing steps: {missing}")
            LOGGER.info("Running pipeline step: %s", name, extra={"event": "pipeline.step", "step": name})
            if hooks and hooks.before_step:
                hooks.before_step(name, context)
            try:
                step.handler(context)
            except Exception as exc:
                if isinstance(exc, PublishError) and exc.step is None:
                    exc.step = name
                if hooks and hooks.on_error:
                    hooks.on_error(name, context, exc)
                raise
            if hooks and hooks.after_step:
                hooks.after_step(name, context)
            executed.add(name)


def _source_track(context: PipelineContext) -> str:
    if context.source_track is None:
        raise RuntimeError("Promotion steps require a source track")
    return context.source_track


def _build_synchronizer(context: PipelineContext) -> MetadataSynchronizer:
    last = context.state.last_uploaded_version_code
    return MetadataSynchronizer(
        context.service,
        context.package_name,
        fallback_version=last,
        release_version_codes=[last] if last is not None else [],
    )


def _create_edit(context: PipelineContext) -> None:
    session = context.service.create_edit(context.package_name)
    context.state.record_edit(session.edit_id, session.expiry)
    context.summary.edit_id = session.edit_id
    LOGGER.info(
        "Opened edit",
        extra={"event": "pipeline.edit", "edit_id": session.edit_id, "expiry": session.expiry},
    )


def _upload_artifacts(context: PipelineContext) -> None:
    for artifact in context.artifacts:
        LOGGER.info("Uploading artifact %s", artifact.path, extra={"event": "pipeline.upload"})
        try:
            stream = artifact.path.open("rb")
        except OSError as exc:
            raise ResourceNotFoundError(
                "Artifact could not be opened", details={"path": str(artifact.path), "reason": str(exc)}
            ) from exc
        with stream:
            version_code = context.service.upload_artifact(
                context.package_name, context.edit_id, stream, media_type=artifact.media_type
            )
        context.state.record_upload(version_code)
        LOGGER.info(
            "Uploaded artifact",
            extra={"event": "pipeline.upload", "path": str(artifact.path), "version_code": version_code},
        )


def _sync_metadata(context: PipelineContext) -> None:
    if context.metadata_root is None:
        raise RuntimeError("syncMetadata requires a metadata root")
    metadata_dir = context.metadata_root / METADATA_DIRNAME
    if not metadata_dir.is_dir():
        raise ResourceNotFoundError("Metadata directory not found", details={"path": str(metadata_dir)})
    try:
        language_dirs = list(iter_directories(metadata_dir))
    except OSError as exc:
        raise ResourceNotFoundError(
            "Metadata directory could not be listed", details={"path": str(metadata_dir), "reason": str(exc)}
        ) from exc

    synchronizer = _build_synchronizer(context)
    # Filesystem listing order; no ordering between languages is promised.
    for language_dir in language_dirs:
        language = language_dir.name
        report = synchronizer.sync(language, language_dir, context.edit_id)
        summary = context.summary
        summary.languages.append(language)
        summary.listings_patched += 1
        summary.changelogs_applied += report.changelogs_applied
        summary.images_uploaded += report.images_uploaded
        LOGGER.info(
            "Synchronised metadata for %s",
            language,
            extra={
                "event": "pipeline.metadata",
                "fields": report.listing_fields,
                "changelogs": report.changelogs_applied,
                "images": report.images_uploaded,
                "skipped": report.skipped,
            },
        )


def _update_track(context: PipelineContext) -> None:
    version_code = context.state.last_uploaded_version_code
    if version_code is None:
        raise TransactionError("No artifact version code available for the track update")
    update = TrackUpdate.build(context.track, [version_code], context.user_fraction)
    context.service.update_track(context.package_name, context.edit_id, update)
    context.summary.version_codes = list(update.version_codes)
    LOGGER.info("Updated track", extra={"event": "pipeline.track", **update.to_payload()})


def _add_changelog(context: PipelineContext) -> None:
    path = context.changelog_file
    if path is None or not path.is_file():
        LOGGER.warning(
            "Changelog file not found; skipping",
            extra={"event": "pipeline.changelog", "path": str(path)},
        )
        return
    synchronizer = _build_synchronizer(context)
    try:
        entry = synchronizer.read_changelog(context.changelog_language, path)
    except MetadataReadError as exc:
        LOGGER.warning("Skipping changelog: %s", exc, extra={"event": "pipeline.changelog"})
        return
    if not synchronizer.is_released(entry.version_code):
        LOGGER.warning(
            "Skipping changelog for version %s: it is not part of this release",
            entry.version_code,
            extra={"event": "pipeline.changelog", "path": str(path)},
        )
        return
    context.service.patch_changelog(context.package_name, context.edit_id, entry)
    context.summary.changelogs_applied += 1
    LOGGER.info(
        "Added changelog",
        extra={"event": "pipeline.changelog", "language": entry.language, "version_code": entry.version_code},
    )


def _get_source_track(context: PipelineContext) -> None:
    codes = context.service.get_track(context.package_name, context.edit_id, _source_track(context))
    if not codes:
        raise TransactionError(
            "Source track has no version codes to promote", details={"track": context.source_track}
        )
    context.promoted_version_codes = codes
    LOGGER.info(
        "Read source track",
        extra={"event": "pipeline.track", "track": context.source_track, "versionCodes": codes},
    )


def _promote_track(context: PipelineContext) -> None:
    update = TrackUpdate.build(context.track, context.promoted_version_codes, context.user_fraction)
    context.service.update_track(context.package_name, context.edit_id, update)
    context.summary.version_codes = list(update.version_codes)
    LOGGER.info("Promoted release", extra={"event": "pipeline.track", **update.to_payload()})


def _clear_source_track(context: PipelineContext) -> None:
    cleared = TrackUpdate(track=_source_track(context), version_codes=())
    context.service.update_track(context.package_name, context.edit_id, cleared)


def _commit(context: PipelineContext) -> None:
    context.service.commit(context.package_name, context.edit_id)
    context.state.committed = True
    context.summary.committed = True
    LOGGER.info(
        "Committed edit",
        extra={"event": "pipeline.commit", "edit_id": context.state.edit_id, "track": context.track},
    )


def build_publish_steps(*, sync_metadata: bool, add_changelog: bool) -> list[PipelineStep]:
    steps = [
        PipelineStep("createEdit", _create_edit),
        PipelineStep("uploadArtifact", _upload_artifacts, depends_on=("createEdit",)),
    ]
    if sync_metadata:
        steps.append(PipelineStep("syncMetadata", _sync_metadata, depends_on=("uploadArtifact",)))
    steps.append(PipelineStep("updateTrack", _update_track, depends_on=("uploadArtifact",)))
    if add_changelog:
        steps.append(PipelineStep("addChangelog", _add_changelog, depends_on=("uploadArtifact",)))
    steps.append(PipelineStep("commit", _commit, depends_on=("createEdit",)))
    return steps


def build_promote_steps(*, clear_source: bool) -> list[PipelineStep]:
    steps = [
        PipelineStep("createEdit", _create_edit),
        PipelineStep("getTrack", _get_source_track, depends_on=("createEdit",)),
        PipelineStep("updateTrack", _promote_track, depends_on=("getTrack",)),
    ]
    if clear_source:
        steps.append(PipelineStep("clearTrack", _clear_source_track, depends_on=("updateTrack",)))
    steps.append(PipelineStep("commit", _commit, depends_on=("createEdit",)))
    return steps


def _check_fraction(track: str, user_fraction: float | None) -> None:
    if track == ROLLOUT_TRACK:
        validate_user_fraction(user_fraction)


class PublishPipeline:
    """Publishes artifacts, optional metadata and an optional changelog in one edit.

    A failed run leaves its edit open on the service; the edit id stays in
    the pipeline state so it can be aborted later.
    """

    def __init__(self, service: RemoteEditService, *, hooks: PipelineHooks | None = None) -> None:
        self._service = service
        self._hooks = hooks
        self.state: PipelineState | None = None

    def run(
        self,
        package_name: str | None,
        artifact_paths: Sequence[str | Path],
        track: str,
        user_fraction: float | None = None,
        metadata_root: Path | None = None,
        *,
        changelog_file: Path | None = None,
        changelog_language: str = "en-US",
    ) -> PublishSummary:
        if not artifact_paths:
            raise UsageError("At least one artifact is required")
        _check_fraction(track, user_fraction)

        try:
            artifacts = resolve_artifacts([str(path) for path in artifact_paths])
            package_name = package_name or read_package_name(artifacts)
        except ResourceNotFoundError as exc:
            exc.step = exc.step or "resolveArtifacts"
            raise

        runner = PipelineRunner(
            build_publish_steps(
                sync_metadata=metadata_root is not None,
                add_changelog=changelog_file is not None,
            )
        )
        self.state = PipelineState.initialize(package_name, runner.step_names)
        context = PipelineContext(
            service=self._service,
            state=self.state,
            summary=PublishSummary(package_name=package_name, edit_id="", track=track),
            track=track,
            user_fraction=user_fraction,
            artifacts=artifacts,
            metadata_root=metadata_root,
            changelog_file=changelog_file,
            changelog_language=changelog_language,
        )
        runner.run(context, hooks=self._hooks)
        return context.summary


class PromotePipeline:
    """Moves the version codes of one track to another and empties the source.

    When both tracks live on the same store track, as ``rollout`` and
    ``production`` do, the single track update replaces the release and the
    source is not cleared.
    """

    def __init__(self, service: RemoteEditService, *, hooks: PipelineHooks | None = None) -> None:
        self._service = service
        self._hooks = hooks
        self.state: PipelineState | None = None

    def run(
        self,
        package_name: str,
        source_track: str,
        destination_track: str,
        user_fraction: float | None = None,
    ) -> PublishSummary:
        if not package_name:
            raise UsageError("A package name is required")
        if source_track == destination_track:
            raise UsageError("Source and destination tracks must differ")
        _check_fraction(destination_track, user_fraction)

        shared = release_track(source_track) == release_track(destination_track)
        runner = PipelineRunner(build_promote_steps(clear_source=not shared))
        self.state = PipelineState.initialize(package_name, runner.step_names)
        context = PipelineContext(
            service=self._service,
            state=self.state,
            summary=PublishSummary(package_name=package_name, edit_id="", track=destination_track),
            track=destination_track,
            user_fraction=user_fraction,
            source_track=source_track,
        )
        runner.run(context, hooks=self._hooks)
        return context.summary


__all__ = [
    "PipelineContext",
    "PipelineHooks",
    "PipelineRunner",
    "PipelineStep",
    "PromotePipeline",
    "PublishPipeline",
    "build_promote_steps",
    "build_publish_steps",
]
