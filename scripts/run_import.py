#!/usr/bin/env python3
"""Run a label import from the command line.

Hey future me - handy for backfilling a label without going through the app. It builds
the same CatalogContainer the app uses, so Spotify credentials, DATABASE_URL and the
Redis URL all come from the environment / .env file.

Usage:
    python scripts/run_import.py buildit-tech

    # Create tables first on a fresh SQLite file (dev only, use alembic otherwise):
    python scripts/run_import.py buildit-deep --create-tables

    # Show the last import runs instead of importing:
    python scripts/run_import.py "Build It Records" --history

    # Import one artist's releases on the label:
    python scripts/run_import.py buildit-tech --artist spotify:artist:4Z8W4fKeB5YxbusRsdQVPb
"""

import argparse
import asyncio
import sys

from labelcatalog.domain.exceptions import DomainException
from labelcatalog.infrastructure.lifecycle import CatalogContainer


async def _run(label: str, create_tables: bool, history: bool, artist: str | None) -> int:
    async with CatalogContainer() as catalog:
        if create_tables:
            await catalog.database.create_tables()

        if history:
            logs = await catalog.importer.import_logs(label)
            if not logs:
                print(f"No import runs recorded for {label}")
            for log in logs:
                print(f"{log.started_at:%Y-%m-%d %H:%M:%S}  {log.status:<9}  {log.message}")
            return 0

        try:
            if artist:
                result = await catalog.import_artist(artist, label)
            else:
                result = await catalog.run_import(label)
        except DomainException as e:
            print(f"ERROR: {e.message}", file=sys.stderr)
            return 1

        print(result.message)
        print(
            f"  albums found: {result.albums_found}\n"
            f"  releases created: {result.releases_created}\n"
            f"  tracks created: {result.tracks_created}\n"
            f"  artists created: {result.artists_created}\n"
            f"  credits created: {result.links_created}"
        )
        return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Import a label's catalog from Spotify")
    parser.add_argument("label", help="Label slug, name, alias or id")
    parser.add_argument(
        "--create-tables",
        action="store_true",
        help="Create database tables before importing (development only)",
    )
    parser.add_argument(
        "--history",
        action="store_true",
        help="List recent import runs instead of importing",
    )
    parser.add_argument(
        "--artist",
        metavar="ID",
        help="Import only this artist's releases (id, URI or URL)",
    )
    args = parser.parse_args()
    return asyncio.run(_run(args.label, args.create_tables, args.history, args.artist))


if __name__ == "__main__":
    sys.exit(main())
