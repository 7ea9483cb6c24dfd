#!/usr/bin/env python3
"""EasyPages admin CLI - deploy archives and clean up history from a shell.

Usage:
    easypages-admin deploy <project> <archive>          # Deploy a zip/tarball
    easypages-admin history <project>                   # Print deployment ids
    easypages-admin cleanup <project> [--chunk-size N]  # Delete all but production
    easypages-admin cleanup <project> --dry-run         # Show what would go

Uses the same CF_API_TOKEN / CF_ACCOUNT_ID environment as the server.

Exit codes:
    0 - Success
    1 - Configuration, validation or API failure
    2 - Cleanup finished with some failed deletions
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from easypages import config
from easypages.archive import open_archive
from easypages.cleanup import deletable_ids, iter_chunked_deletion
from easypages.cloudflare import CloudflareClient
from easypages.errors import EasyPagesError
from easypages.history import list_all
from easypages.manifest import build_manifest
from easypages.publisher import publish
from easypages.validation import validate_project_name


async def cmd_deploy(client: CloudflareClient, project: str, archive: Path) -> int:
    """Build and publish a deployment from a local archive."""
    if not archive.is_file():
        print(f"Error: archive '{archive}' not found", file=sys.stderr)
        return 1

    build = build_manifest(open_archive(archive))
    for rejected in build.rejected:
        print(f"Skipped unsafe entry: {rejected.name}")

    deployment = await publish(client, project, build)
    print(f"Deployed {len(build.manifest)} files to {project}: {deployment.get('url') or deployment.get('id')}")
    return 0


async def cmd_history(client: CloudflareClient, project: str) -> int:
    """Print every deployment id, marking production."""
    history = await list_all(client, project)
    for deployment_id in history.ids:
        marker = " (production)" if deployment_id == history.production_id else ""
        print(f"{deployment_id}{marker}")
    if not history.complete:
        print("Warning: history scan stopped early, list may be incomplete", file=sys.stderr)
    return 0


async def cmd_cleanup(client: CloudflareClient, project: str, chunk_size: int, dry_run: bool) -> int:
    """Delete every deployment except production, reporting progress per chunk."""
    history = await list_all(client, project)
    candidates = deletable_ids(history)
    print(f"Keeping production deployment {history.production_id}; {len(candidates)} to delete")

    if dry_run:
        for deployment_id in candidates:
            print(f"Would delete {deployment_id}")
        return 0

    failed = 0
    async for progress in iter_chunked_deletion(
        client, project, candidates, history.production_id, chunk_size=chunk_size
    ):
        print(f"[{progress.completed}/{progress.total}] deleted={progress.deleted} failed={progress.failed}")
        failed = progress.failed

    return 2 if failed else 0


def positive_int(value: str) -> int:
    """argparse type: an integer of at least 1."""
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid int value: '{value}'")
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {number}")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="easypages-admin", description=__doc__.splitlines()[0])
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    deploy = sub.add_parser("deploy", help="Deploy a zip or tarball")
    deploy.add_argument("project")
    deploy.add_argument("archive", type=Path)

    history = sub.add_parser("history", help="List deployment ids")
    history.add_argument("project")

    cleanup = sub.add_parser("cleanup", help="Delete all deployments except production")
    cleanup.add_argument("project")
    cleanup.add_argument("--chunk-size", type=positive_int, default=10)
    cleanup.add_argument("--dry-run", action="store_true")

    return parser


async def run(args: argparse.Namespace, client: CloudflareClient) -> int:
    if args.command == "deploy":
        return await cmd_deploy(client, args.project, args.archive)
    if args.command == "history":
        return await cmd_history(client, args.project)
    return await cmd_cleanup(client, args.project, args.chunk_size, args.dry_run)


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
    )

    if not config.is_cloudflare_configured():
        print("Error: CF_API_TOKEN and CF_ACCOUNT_ID must be set", file=sys.stderr)
        return 1

    try:
        validate_project_name(args.project)
        return asyncio.run(run(args, CloudflareClient.from_config()))
    except EasyPagesError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        if e.details:
            print(f"Details: {e.details}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
