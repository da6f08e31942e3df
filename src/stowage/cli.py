"""CLI entry point for Stowage."""

import argparse
import dataclasses
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any, Callable, TextIO

from dotenv import load_dotenv
from prometheus_client import REGISTRY, write_to_textfile

from stowage import create_facade, metrics
from stowage.config import StowageConfig, apply_env_overrides, load_config
from stowage.errors import StowageError
from stowage.facade import ObjectStoreFacade
from stowage.logging_config import configure_logging
from stowage.observability import OperationObserver, OperationRecord

logger = logging.getLogger("stowage")


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with one subparser per operation."""
    parser = argparse.ArgumentParser(
        prog="stowage",
        description="Stowage - object storage operations against an S3-compatible endpoint",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to YAML configuration file (default: built-in defaults)",
    )
    parser.add_argument(
        "--env-file",
        type=Path,
        default=Path(".env"),
        help="dotenv file read before the environment is consulted (default: ./.env)",
    )
    parser.add_argument(
        "--endpoint",
        type=str,
        default=None,
        help="Service endpoint URL (overrides config)",
    )
    parser.add_argument(
        "--region",
        type=str,
        default=None,
        help="Signing and bucket region (overrides config)",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Log level (overrides config, default: INFO)",
    )
    parser.add_argument(
        "--log-format",
        type=str,
        default=None,
        choices=["text", "json"],
        help="Log format: 'text' (human-readable) or 'json' (structured)",
    )

    sub = parser.add_subparsers(dest="command", required=True, metavar="COMMAND")

    sub.add_parser("buckets", help="List buckets")

    p = sub.add_parser("exists", help="Check whether a bucket exists")
    p.add_argument("bucket")

    p = sub.add_parser("mb", help="Create a bucket")
    p.add_argument("bucket")
    p.add_argument("--bucket-region", default=None, help="Region for the new bucket")

    p = sub.add_parser("rb", help="Delete an empty bucket")
    p.add_argument("bucket")

    p = sub.add_parser("put", help="Upload a local file")
    p.add_argument("bucket")
    p.add_argument("key")
    p.add_argument("file", type=Path)
    p.add_argument("--large", action="store_true", help="Use a concurrent multipart upload")
    p.add_argument("--part-size-mib", type=int, default=None, help="Multipart part size")
    p.add_argument("--content-type", default=None)

    p = sub.add_parser("get", help="Download an object to a local file")
    p.add_argument("bucket")
    p.add_argument("key")
    p.add_argument("file", type=Path)
    p.add_argument("--large", action="store_true", help="Use concurrent ranged downloads")

    p = sub.add_parser("head", help="Show object metadata")
    p.add_argument("bucket")
    p.add_argument("key")

    p = sub.add_parser("cp", help="Copy an object")
    p.add_argument("source_bucket")
    p.add_argument("source_key")
    p.add_argument("dest_bucket")
    p.add_argument("dest_key")

    p = sub.add_parser("cp-folder", help="Copy an object into a folder of the same bucket")
    p.add_argument("bucket")
    p.add_argument("key")
    p.add_argument("folder")

    p = sub.add_parser("ls", help="List objects (defaults to the configured bucket)")
    p.add_argument("bucket", nargs="?", default=None)
    p.add_argument("--prefix", default=None)

    p = sub.add_parser("rm", help="Delete objects")
    p.add_argument("bucket")
    p.add_argument("keys", nargs="+")

    p = sub.add_parser("uploads", help="List in-progress multipart uploads")
    p.add_argument("bucket")
    p.add_argument("--prefix", default=None)

    p = sub.add_parser("abort", help="Abort a multipart upload")
    p.add_argument("bucket")
    p.add_argument("key")
    p.add_argument("upload_id")

    return parser


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Args:
        argv: Argument list to parse. Defaults to sys.argv[1:].

    Returns:
        Parsed argument namespace.
    """
    return build_parser().parse_args(argv)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def _cmd_buckets(facade: ObjectStoreFacade, args: argparse.Namespace, record: OperationRecord) -> Any:
    return facade.list_buckets()


def _cmd_exists(facade: ObjectStoreFacade, args: argparse.Namespace, record: OperationRecord) -> Any:
    return {"bucket": args.bucket, "exists": facade.bucket_exists(args.bucket)}


def _cmd_mb(facade: ObjectStoreFacade, args: argparse.Namespace, record: OperationRecord) -> Any:
    facade.create_bucket(args.bucket, region=args.bucket_region)
    return {"bucket": args.bucket, "created": True}


def _cmd_rb(facade: ObjectStoreFacade, args: argparse.Namespace, record: OperationRecord) -> Any:
    facade.delete_bucket(args.bucket)
    return {"bucket": args.bucket, "deleted": True}


def _cmd_put(facade: ObjectStoreFacade, args: argparse.Namespace, record: OperationRecord) -> Any:
    record.bytes_uploaded = args.file.stat().st_size
    with open(args.file, "rb") as fh:
        if not args.large:
            etag = facade.upload_object(args.bucket, args.key, fh, content_type=args.content_type)
            return {"bucket": args.bucket, "key": args.key, "etag": etag}

        part_size = args.part_size_mib * 1024 * 1024 if args.part_size_mib else None
        session = facade.upload_large_object(
            args.bucket, args.key, fh, part_size_bytes=part_size, content_type=args.content_type
        )
    return {
        "bucket": session.bucket,
        "key": session.key,
        "upload_id": session.upload_id,
        "etag": session.etag,
        "state": session.state.value,
        "parts": len(session.parts),
    }


def _cmd_get(facade: ObjectStoreFacade, args: argparse.Namespace, record: OperationRecord) -> Any:
    if args.large:
        data = facade.download_large_object(args.bucket, args.key)
        args.file.write_bytes(data)
        size = len(data)
    else:
        size = facade.download_file(args.bucket, args.key, args.file)
    record.bytes_downloaded = size
    return {"bucket": args.bucket, "key": args.key, "file": str(args.file), "bytes": size}


def _cmd_head(facade: ObjectStoreFacade, args: argparse.Namespace, record: OperationRecord) -> Any:
    return facade.head_object(args.bucket, args.key)


def _cmd_cp(facade: ObjectStoreFacade, args: argparse.Namespace, record: OperationRecord) -> Any:
    etag = facade.copy_object(args.source_bucket, args.source_key, args.dest_bucket, args.dest_key)
    return {"bucket": args.dest_bucket, "key": args.dest_key, "etag": etag}


def _cmd_cp_folder(facade: ObjectStoreFacade, args: argparse.Namespace, record: OperationRecord) -> Any:
    etag = facade.copy_to_folder(args.bucket, args.key, args.folder)
    return {"bucket": args.bucket, "key": f"{args.folder.rstrip('/')}/{args.key}", "etag": etag}


def _cmd_ls(facade: ObjectStoreFacade, args: argparse.Namespace, record: OperationRecord) -> Any:
    return facade.list_objects(args.bucket, prefix=args.prefix)


def _cmd_rm(facade: ObjectStoreFacade, args: argparse.Namespace, record: OperationRecord) -> Any:
    return {"bucket": args.bucket, "deleted": facade.delete_objects(args.bucket, args.keys)}


def _cmd_uploads(facade: ObjectStoreFacade, args: argparse.Namespace, record: OperationRecord) -> Any:
    return facade.list_multipart_uploads(args.bucket, prefix=args.prefix)


def _cmd_abort(facade: ObjectStoreFacade, args: argparse.Namespace, record: OperationRecord) -> Any:
    facade.abort_multipart_upload(args.bucket, args.key, args.upload_id)
    return {"bucket": args.bucket, "key": args.key, "upload_id": args.upload_id, "aborted": True}


# command -> (operation name for logs, handler)
COMMANDS: dict[str, tuple[str, Callable[..., Any]]] = {
    "buckets": ("list buckets", _cmd_buckets),
    "exists": ("check bucket", _cmd_exists),
    "mb": ("create bucket", _cmd_mb),
    "rb": ("delete bucket", _cmd_rb),
    "put": ("upload object", _cmd_put),
    "get": ("download object", _cmd_get),
    "head": ("head object", _cmd_head),
    "cp": ("copy object", _cmd_cp),
    "cp-folder": ("copy object to folder", _cmd_cp_folder),
    "ls": ("list objects", _cmd_ls),
    "rm": ("delete objects", _cmd_rm),
    "uploads": ("list multipart uploads", _cmd_uploads),
    "abort": ("abort multipart upload", _cmd_abort),
}


def _to_jsonable(result: Any) -> Any:
    if dataclasses.is_dataclass(result) and not isinstance(result, type):
        return dataclasses.asdict(result)
    if isinstance(result, list):
        return [_to_jsonable(item) for item in result]
    return result


def run(
    args: argparse.Namespace,
    facade: ObjectStoreFacade,
    out: TextIO | None = None,
    observer: OperationObserver | None = None,
) -> int:
    """Run one parsed command and print its result as JSON.

    Args:
        args: Parsed arguments (``args.command`` selects the handler).
        facade: The facade to run against.
        out: Output stream. Defaults to sys.stdout.
        observer: Operation observer. A default one is created when omitted.

    Returns:
        The process exit status: 0 on success, 1 on a storage or file error.
    """
    out = out or sys.stdout
    observer = observer or OperationObserver()
    operation, handler = COMMANDS[args.command]
    fields = {name: getattr(args, name) for name in ("bucket", "key") if getattr(args, name, None)}

    try:
        with observer.track(operation, **fields) as record:
            result = handler(facade, args, record)
    except (StowageError, OSError):
        # Already logged by the observer
        return 1

    out.write(json.dumps(_to_jsonable(result), indent=4, default=str))
    out.write("\n")
    return 0


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the Stowage CLI.

    Loads configuration, applies environment and CLI overrides, runs one
    command and exits with its status.

    Args:
        argv: Argument list to parse. Defaults to sys.argv[1:].
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    # Use a basic stderr logger for config-loading errors
    logging.basicConfig(level=logging.INFO, stream=sys.stderr)

    # Existing environment variables win over the file
    if load_dotenv(args.env_file):
        logger.info("Environment variables loaded from %s", args.env_file)

    if args.config is None:
        config = StowageConfig()
    else:
        try:
            config = load_config(args.config)
        except FileNotFoundError:
            logger.error("Config file not found: %s", args.config)
            sys.exit(1)
        except Exception as exc:
            logger.error("Failed to load config: %s", exc)
            sys.exit(1)

    apply_env_overrides(config, os.environ)

    # Apply CLI overrides
    if args.endpoint is not None:
        config.endpoint.url = args.endpoint
    if args.region is not None:
        config.endpoint.region = args.region
    if args.log_level is not None:
        config.logging.level = args.log_level
    if args.log_format is not None:
        config.logging.format = args.log_format

    if args.command == "ls" and args.bucket is None:
        if not config.endpoint.default_bucket:
            parser.error("ls: no bucket given and no default bucket configured")
        args.bucket = config.endpoint.default_bucket

    configure_logging(level=config.logging.level, fmt=config.logging.format)

    if config.observability.metrics_file:
        metrics.init_metrics()

    try:
        facade = create_facade(config)
    except (ValueError, StowageError) as exc:
        logger.error("Couldn't create the storage client: %s", exc)
        sys.exit(1)

    with facade:
        status = run(args, facade)

    if config.observability.metrics_file:
        write_to_textfile(config.observability.metrics_file, REGISTRY)

    sys.exit(status)


if __name__ == "__main__":
    main()
