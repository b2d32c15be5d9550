"""Command-line interface for publishing and promoting Google Play releases."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Callable, Sequence

import requests

from ..errors import PublishError, UsageError
from ..platforms import PublishSummary
from ..platforms.base import STANDARD_TRACKS
from ..platforms.googleplay import GooglePlayCredentialStore, GooglePlayEditService
from ..platforms.googleplay.credentials import SERVICE_ACCOUNT_SECRET
from ..security import ChainedSecretProvider, EnvSecretProvider, FileSecretProvider, SecretProvider
from ..settings import AppConfig, load_config
from ..utils.logging import configure_logging, get_logger
from .pipeline import PipelineContext, PipelineHooks, PromotePipeline, PublishPipeline
from .pipeline_state import PipelineState, PipelineStateStore

LOGGER = get_logger(__name__)

EXIT_FAILURE = 1
EXIT_USAGE = 2


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    configure_logging(
        level=logging.DEBUG if args.verbose else logging.INFO,
        structured=not args.log_plain,
    )

    handler: Callable[[argparse.Namespace], int] | None = getattr(args, "handler", None)
    if handler is None:
        parser.print_help(sys.stderr)
        return EXIT_USAGE
    return handler(args)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="play-release", description="Google Play release automation")
    parser.add_argument("--config", help="Path to configuration file", default=None)
    parser.add_argument(
        "--log-plain",
        action="store_true",
        help="Use plain-text logs instead of JSON",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command")

    _add_publish_command(subparsers)
    _add_promote_command(subparsers)
    _add_state_commands(subparsers)
    _add_edit_commands(subparsers)

    return parser


def _add_auth_arguments(parser: argparse.ArgumentParser, *, package_required: bool = True) -> None:
    parser.add_argument(
        "--package",
        required=package_required,
        default=None,
        help="Application package name, e.g. com.example.app"
        + ("" if package_required else "; read from the first APK when omitted"),
    )
    parser.add_argument(
        "--key-file",
        type=Path,
        default=None,
        help="Service account JSON key; overrides the configured key file",
    )


def _add_publish_command(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    publish_parser = subparsers.add_parser("publish", help="Upload artifacts and commit a release")
    _add_auth_arguments(publish_parser, package_required=False)
    publish_parser.add_argument(
        "--artifact",
        dest="artifacts",
        action="append",
        required=True,
        metavar="PATH",
        help="APK or AAB path or glob pattern; repeat for several artifacts",
    )
    publish_parser.add_argument(
        "--track",
        default=None,
        help=f"One of {', '.join(STANDARD_TRACKS)} or a custom track name",
    )
    publish_parser.add_argument(
        "--user-fraction",
        type=float,
        default=None,
        help="Fraction of users receiving a rollout, in (0, 1]",
    )
    publish_parser.add_argument(
        "--metadata-root",
        type=Path,
        default=None,
        help="Directory containing the metadata/<language>/ tree",
    )
    publish_parser.add_argument("--changelog", type=Path, default=None, help="Changelog file to attach")
    publish_parser.add_argument(
        "--changelog-language",
        default=None,
        help="Language of --changelog (defaults to the configured language)",
    )
    publish_parser.set_defaults(handler=_handle_publish)


def _add_promote_command(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    promote_parser = subparsers.add_parser("promote", help="Move a release from one track to another")
    _add_auth_arguments(promote_parser)
    promote_parser.add_argument("--source-track", required=True, help="Track to take version codes from")
    promote_parser.add_argument("--destination-track", required=True, help="Track to assign them to")
    promote_parser.add_argument("--user-fraction", type=float, default=None, help="Rollout fraction in (0, 1]")
    promote_parser.set_defaults(handler=_handle_promote)


def _add_state_commands(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    state_parser = subparsers.add_parser("state", help="Inspect the record of the last run")
    state_subparsers = state_parser.add_subparsers(dest="state_command", required=True)

    inspect_parser = state_subparsers.add_parser("inspect", help="Show the stored run record")
    inspect_parser.add_argument("--package", required=True, help="Application package name")
    inspect_parser.add_argument(
        "--format",
        choices=("json", "table"),
        default="json",
        help="Output format for state inspection",
    )
    inspect_parser.set_defaults(handler=_handle_state_inspect)


def _add_edit_commands(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    edit_parser = subparsers.add_parser("edit", help="Manage edits left open by failed runs")
    edit_subparsers = edit_parser.add_subparsers(dest="edit_command", required=True)

    abort_parser = edit_subparsers.add_parser("abort", help="Abort the edit left open by the last run")
    _add_auth_arguments(abort_parser)
    abort_parser.set_defaults(handler=_handle_edit_abort)


def _handle_publish(args: argparse.Namespace) -> int:
    config = load_config(args.config)
    track = args.track or config.publish.track
    user_fraction = args.user_fraction if args.user_fraction is not None else config.publish.user_fraction
    metadata_root = args.metadata_root or config.publish.metadata_root
    changelog_language = args.changelog_language or config.publish.changelog_language

    store = PipelineStateStore(config.paths.runs_dir)
    LOGGER.info(
        "Publish started",
        extra={"event": "cli.command", "command": "publish", "package": args.package, "track": track},
    )

    pipeline: PublishPipeline | None = None
    try:
        credentials, service = _build_clients(config, key_file=args.key_file)
        credentials.get_token()
        pipeline = PublishPipeline(service, hooks=_build_hooks(store))
        summary = pipeline.run(
            args.package,
            args.artifacts,
            track,
            user_fraction,
            metadata_root,
            changelog_file=args.changelog,
            changelog_language=changelog_language,
        )
    except UsageError as exc:
        print(f"play-release: {exc}", file=sys.stderr)
        return EXIT_USAGE
    except PublishError as exc:
        state = pipeline.state if pipeline else None
        _report_failure("publish", state.package_name if state else args.package, exc, state)
        return EXIT_FAILURE

    _print_summary(summary)
    LOGGER.info(
        "Publish finished",
        extra={"event": "cli.command", "command": "publish", "package": summary.package_name, "edit_id": summary.edit_id},
    )
    return 0


def _handle_promote(args: argparse.Namespace) -> int:
    config = load_config(args.config)
    store = PipelineStateStore(config.paths.runs_dir)
    LOGGER.info(
        "Promote started",
        extra={
            "event": "cli.command",
            "command": "promote",
            "package": args.package,
            "source": args.source_track,
            "destination": args.destination_track,
        },
    )

    pipeline: PromotePipeline | None = None
    try:
        credentials, service = _build_clients(config, key_file=args.key_file)
        credentials.get_token()
        pipeline = PromotePipeline(service, hooks=_build_hooks(store))
        summary = pipeline.run(args.package, args.source_track, args.destination_track, args.user_fraction)
    except UsageError as exc:
        print(f"play-release: {exc}", file=sys.stderr)
        return EXIT_USAGE
    except PublishError as exc:
        _report_failure("promote", args.package, exc, pipeline.state if pipeline else None)
        return EXIT_FAILURE

    _print_summary(summary)
    return 0


def _handle_state_inspect(args: argparse.Namespace) -> int:
    config = load_config(args.config)
    state = PipelineStateStore(config.paths.runs_dir).load(args.package)
    if state is None:
        LOGGER.warning(
            "No run recorded",
            extra={"event": "cli.command", "command": "state.inspect", "package": args.package},
        )
        print("<no-state>")
        return 0

    if args.format == "table":
        _print_state_table(state)
    else:
        print(json.dumps(state.to_dict(), ensure_ascii=False, indent=2))
    return 0


def _handle_edit_abort(args: argparse.Namespace) -> int:
    config = load_config(args.config)
    store = PipelineStateStore(config.paths.runs_dir)
    state = store.load(args.package)
    if state is None or not state.has_open_edit:
        print("<no-open-edit>")
        return 0

    try:
        credentials, service = _build_clients(config, key_file=args.key_file)
        credentials.get_token()
        service.abort(args.package, state.require_edit())
    except PublishError as exc:
        exc.step = exc.step or "abort"
        _report_failure("edit.abort", args.package, exc, None)
        return EXIT_FAILURE

    LOGGER.info(
        "Aborted edit",
        extra={"event": "cli.command", "command": "edit.abort", "package": args.package, "edit_id": state.edit_id},
    )
    store.delete(args.package)
    print(f"Aborted edit {state.edit_id}")
    return 0


def _build_secrets(config: AppConfig, key_file: Path | None) -> SecretProvider:
    providers: list[SecretProvider] = []
    resolved_key = key_file or config.auth.key_file
    if resolved_key is not None:
        providers.append(FileSecretProvider({SERVICE_ACCOUNT_SECRET: resolved_key}))
    providers.append(EnvSecretProvider(prefix=config.auth.env_prefix))
    return ChainedSecretProvider(providers)


def _build_clients(
    config: AppConfig, *, key_file: Path | None = None
) -> tuple[GooglePlayCredentialStore, GooglePlayEditService]:
    session = requests.Session()
    credentials = GooglePlayCredentialStore(
        _build_secrets(config, key_file),
        token_cache_path=config.paths.token_cache if config.auth.cache_token else None,
        session=session,
        timeout=config.auth.token_timeout,
    )
    service = GooglePlayEditService(
        credentials,
        session=session,
        base_url=config.api.base_url,
        timeout=config.api.timeout,
    )
    return credentials, service


def _build_hooks(store: PipelineStateStore) -> PipelineHooks:
    def before(step: str, context: PipelineContext) -> None:
        context.state.mark_running(step)
        store.save(context.state)

    def after(step: str, context: PipelineContext) -> None:
        context.state.mark_completed(step)
        store.save(context.state)

    def error(step: str, context: PipelineContext, exc: BaseException) -> None:
        context.state.mark_failed(step)
        store.save(context.state)
        LOGGER.debug(
            "Exception captured",
            extra={"event": "pipeline.error", "step": step, "error_type": type(exc).__name__},
        )

    return PipelineHooks(before_step=before, after_step=after, on_error=error)


def _report_failure(
    command: str, package_name: str | None, exc: PublishError, state: PipelineState | None
) -> None:
    LOGGER.error(
        "Run failed",
        extra={
            "event": "cli.error",
            "command": command,
            "package": package_name,
            "step": exc.step,
            "error_type": type(exc).__name__,
        },
    )
    print(f"play-release: step '{exc.step or '<setup>'}' failed: {exc}", file=sys.stderr)
    if state is not None and state.has_open_edit:
        print(
            f"play-release: edit {state.edit_id} was left open; "
            f"run 'play-release edit abort --package {package_name}' to discard it",
            file=sys.stderr,
        )


def _print_summary(summary: PublishSummary) -> None:
    print(json.dumps(asdict(summary), ensure_ascii=False, indent=2))


def _print_state_table(state: PipelineState) -> None:
    width = max((len(name) for name in state.steps), default=8)
    print("Step".ljust(width), "Status", sep="  ")
    for name, status in state.steps.items():
        print(name.ljust(width), status, sep="  ")
    print(f"edit: {state.edit_id or '-'}  committed: {state.committed}")


__all__ = ["main"]


if __name__ == "__main__":
    raise SystemExit(main())
