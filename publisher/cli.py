"""Command line interface for publisher package."""
from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path
from typing import Dict, Optional, Sequence

from rich.logging import RichHandler

from .errors import PublishError
from .cli_progress import (
    UploadProgress,
    render_configuration_summary,
    render_frames,
    render_result,
    render_warning,
)

DEFAULT_SESSION_COOKIE_NAME = "connect.sid"
THUMBNAIL_MODES = ("auto", "frame", "timestamp", "upload", "skip")


class CLIError(RuntimeError):
    """Raised when CLI validation/execution fails."""


def _setup_logging(debug: bool, silent: bool, log_level: Optional[str]) -> str:
    """
    Configure logging.

    Default behavior is silent unless --debug or --log-level is provided.
    Returns a string describing effective mode.
    """
    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)

    logging.disable(logging.NOTSET)

    if silent or (not debug and not log_level and not os.getenv("LOG_LEVEL")):
        logging.disable(logging.CRITICAL)
        root_logger.setLevel(logging.CRITICAL + 1)
        return "silent"

    if debug:
        level = logging.DEBUG
    elif log_level:
        level = getattr(logging, log_level.upper(), logging.INFO)
    else:
        level = getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO)

    handler = RichHandler(
        rich_tracebacks=True,
        markup=False,
        show_time=False,
        show_path=False,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))
    root_logger.addHandler(handler)
    root_logger.setLevel(level)
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(max(level, logging.WARNING))
    return logging.getLevelName(level)


def _strip_optional_quotes(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in {"'", '"'}:
        return value[1:-1]
    return value


def _load_env_file(path: Path, override: bool = False) -> None:
    if not path.exists():
        raise CLIError(f"env file not found: {path}")
    if not path.is_file():
        raise CLIError(f"env path is not a file: {path}")

    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise CLIError(f"could not read env file {path}: {exc}") from exc

    for raw_line in content.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[len("export ") :].strip()
        if "=" not in line:
            continue

        key, value = line.split("=", 1)
        key = key.strip()
        if not key:
            continue

        value = _strip_optional_quotes(value.strip())
        if override or key not in os.environ:
            os.environ[key] = value


def _resolve_default_env_file() -> Optional[Path]:
    default_env = Path(".env")
    return default_env if default_env.exists() and default_env.is_file() else None


def _parse_cookies(raw: Optional[str]) -> Optional[Dict[str, str]]:
    """
    Parse ``POSTER_SESSION_COOKIE``.

    Accepts a bare session id or a ``name=value; name2=value2`` header string.
    """
    if not raw or not raw.strip():
        return None
    raw = raw.strip()
    if "=" not in raw:
        return {DEFAULT_SESSION_COOKIE_NAME: raw}

    cookies = {}
    for part in raw.split(";"):
        if "=" not in part:
            continue
        name, value = part.split("=", 1)
        name = name.strip()
        if name:
            cookies[name] = _strip_optional_quotes(value.strip())
    return cookies or None


async def _choose_thumbnail(workflow, mode: str, frame: Optional[int], timestamp: Optional[float],
                            thumbnail_file: Optional[Path]) -> None:
    try:
        if mode == "skip":
            await workflow.skip()
            return
        if mode == "auto":
            await workflow.generate_auto()
        elif mode == "frame":
            render_frames(await workflow.show_frames())
            if frame is not None:
                workflow.pick_frame_index(frame)
        elif mode == "timestamp":
            await workflow.show_frames()
            await workflow.preview_at(workflow.custom_timestamp if timestamp is None else timestamp)
        elif mode == "upload":
            await workflow.upload_custom(thumbnail_file)
        workflow.confirm()
    except PublishError as exc:
        print(f"WARNING: {exc}; falling back to the auto thumbnail", file=sys.stderr)
        await workflow.skip()


async def _run_post(
    api_url: str,
    cookies: Optional[Dict[str, str]],
    text: str,
    media: Optional[Path],
    visibility: str,
    group_id: Optional[str],
    thumbnail_mode: str,
    frame: Optional[int],
    timestamp: Optional[float],
    thumbnail_file: Optional[Path],
    precheck: bool,
) -> int:
    try:
        from publisher import PostComposer
        from publisher.errors import ValidationError
        from publisher.models import PublishConfig, PublishStatus
        from publisher.services.transports import select_strategy
        from publisher.utils.events import UPLOAD_PROGRESS
    except Exception as exc:
        raise CLIError(f"cannot import publisher package: {exc}") from exc

    config = PublishConfig()
    async with PostComposer(api_url, config=config, cookies=cookies) as composer:
        composer.set_content(text)
        composer.set_visibility(visibility)
        composer.set_group(group_id)

        progress = None
        if media is not None:
            try:
                asset = await composer.attach_media(media)
            except ValidationError as exc:
                raise CLIError(str(exc)) from exc
            strategy = select_strategy(asset.kind, asset.size_bytes, config.chunked_threshold)
            progress = UploadProgress(asset, strategy.value)
            composer.on(UPLOAD_PROGRESS, progress.get_callback())

        if precheck:
            await composer.pre_check()
            render_warning(composer.warning)

        result = await composer.submit()
        if progress is not None:
            progress.complete(success=result.success or result.media_path is not None, error=result.error)

        if result.status == PublishStatus.AWAITING_THUMBNAIL:
            render_result(result)
            await _choose_thumbnail(
                composer.thumbnail_workflow, thumbnail_mode, frame, timestamp, thumbnail_file
            )
            result = await composer.submit()

        render_result(result)
        return 0 if result.success else 1


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="post-up",
        description="Publish a post with an optional image or video attachment.",
    )
    parser.add_argument("media", nargs="?", type=Path, help="Image or video file to attach")
    parser.add_argument("-t", "--text", default="", help="Post text (max 500 characters)")
    parser.add_argument(
        "-v",
        "--visibility",
        choices=("public", "followers"),
        default="public",
        help="Post audience",
    )
    parser.add_argument("--group", default=None, help="Publish into this group id")
    parser.add_argument(
        "--thumbnail",
        choices=THUMBNAIL_MODES,
        default="auto",
        help="How to pick the video thumbnail (default: auto)",
    )
    parser.add_argument("--frame", type=int, default=None, help="Extracted frame index for --thumbnail frame")
    parser.add_argument(
        "--timestamp",
        type=float,
        default=None,
        help="Seconds into the video for --thumbnail timestamp (default 2)",
    )
    parser.add_argument(
        "--thumbnail-file",
        type=Path,
        default=None,
        help="Image to upload for --thumbnail upload",
    )
    parser.add_argument(
        "--precheck",
        action="store_true",
        help="Run the advisory moderation check before submitting",
    )
    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Load environment variables from this .env file",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logs")
    parser.add_argument("--silent", action="store_true", help="Only print errors")
    parser.add_argument(
        "--log-level",
        default=None,
        help="Explicit log level (DEBUG/INFO/WARNING/ERROR)",
    )
    parser.add_argument(
        "--version",
        action="version",
        version="post-up (from publisher)",
    )
    return parser


def run_cli(argv: Optional[Sequence[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    used_env_file = args.env_file or _resolve_default_env_file()
    if used_env_file is not None:
        try:
            _load_env_file(Path(used_env_file))
        except CLIError as exc:
            print(f"ERROR: {exc}", file=sys.stderr)
            return 1

    effective_log_mode = _setup_logging(
        debug=args.debug,
        silent=args.silent,
        log_level=args.log_level,
    )

    if args.media is None and not args.text.strip():
        parser.print_help()
        return 0

    media = Path(args.media).expanduser() if args.media is not None else None
    if media is not None and not media.is_file():
        print(f"ERROR: media file does not exist: {media}", file=sys.stderr)
        return 1

    if args.thumbnail == "upload" and args.thumbnail_file is None:
        print("ERROR: --thumbnail upload requires --thumbnail-file", file=sys.stderr)
        return 1

    api_url = os.getenv("POSTER_API_URL")
    if not api_url:
        print("ERROR: POSTER_API_URL environment variable is not set", file=sys.stderr)
        return 1
    cookies = _parse_cookies(os.getenv("POSTER_SESSION_COOKIE"))

    render_configuration_summary(
        {
            "Media": str(media) if media else "-",
            "Text": f"{len(args.text)} chars",
            "Visibility": args.visibility,
            "Group": args.group or "-",
            "Thumbnail": args.thumbnail if media else "-",
            "API": api_url,
            "Session": "yes" if cookies else "no",
            "Pre-check": "yes" if args.precheck else "no",
            "Env File": str(used_env_file) if used_env_file else "-",
            "Logging": effective_log_mode,
        }
    )

    try:
        return asyncio.run(
            _run_post(
                api_url=api_url,
                cookies=cookies,
                text=args.text,
                media=media,
                visibility=args.visibility,
                group_id=args.group,
                thumbnail_mode=args.thumbnail,
                frame=args.frame,
                timestamp=args.timestamp,
                thumbnail_file=args.thumbnail_file,
                precheck=args.precheck,
            )
        )
    except CLIError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("Cancelled.", file=sys.stderr)
        return 130


def main() -> None:
    raise SystemExit(run_cli())


if __name__ == "__main__":
    main()
