#!/usr/bin/env python3
"""
Legend Logger - Photo Importer
Imports every map photo in a folder into the local database
"""
import argparse
import asyncio
from pathlib import Path

from legend_logger.database import async_session_maker, init_db
from legend_logger.services.entity_store import EntityStore
from legend_logger.services.persistence import Persistence
from legend_logger.services.photo_import import import_directory


async def run(directory: Path):
    await init_db()

    async with async_session_maker() as session:
        persistence = Persistence(EntityStore(session))
        maps = await import_directory(persistence, directory)

    print(f"Imported {len(maps)} maps from {directory}")
    for map_obj in maps:
        print(f"   • {map_obj.display_name} ({map_obj.id})")


def main():
    parser = argparse.ArgumentParser(description="Import map photos into Legend Logger")
    parser.add_argument("directory", type=Path, help="Folder containing map photos")
    args = parser.parse_args()

    if not args.directory.is_dir():
        parser.error(f"{args.directory} is not a directory")

    asyncio.run(run(args.directory))


if __name__ == "__main__":
    main()
