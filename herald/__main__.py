"""
Herald - Entry Point

Run with: python -m herald <command>
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from herald import __version__
from herald.config import get_config, reload_config
from herald.core.library import MediaLibrary
from herald.core.library_db import LibraryDb
from herald.core.probe import DurationProbe
from herald.web.server import WebServer

logger = logging.getLogger("herald")


def setup_logging(verbose: bool = False) -> None:
    """Configure logging for the application."""
    level = logging.DEBUG if verbose else logging.INFO

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    # Reduce noise from third-party libraries
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="herald",
        description="Herald - a personal music catalogue",
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose (debug) logging",
    )

    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to herald.toml (default: the bundled one)",
    )

    parser.add_argument(
        "--db",
        type=Path,
        default=None,
        help="SQLite database file (overrides [database] path)",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    add = sub.add_parser("add-library", help="Register a music folder")
    add.add_argument("name")
    add.add_argument("path", type=Path)

    sub.add_parser("libraries", help="List registered libraries")
    sub.add_parser("scan", help="Scan every library")

    serve = sub.add_parser("serve", help="Serve the catalogue over HTTP")
    serve.add_argument("--host", type=str, default=None, help="Host address to bind to")
    serve.add_argument("--port", type=int, default=None, help="Port to listen on")

    return parser.parse_args(argv)


async def run(args: argparse.Namespace) -> int:
    """Open the database and run one command."""
    config = get_config()
    db = LibraryDb(args.db if args.db is not None else config.database.path)
    await db.open()
    try:
        probe = DurationProbe(config.scanner.ffprobe, timeout=config.scanner.probe_timeout)
        library = MediaLibrary(
            db=db,
            probe=probe,
            follow_symlinks=config.scanner.follow_symlinks,
        )
        await library.initialize()

        if args.command == "add-library":
            # Library paths are stored absolute
            await db.add_library(args.name, args.path.expanduser().resolve())
        elif args.command == "libraries":
            for name, lib in (await db.get_libraries()).items():
                print(f"{lib.id.get()}\t{name}\t{lib.path.get()}")
        elif args.command == "scan":
            if not probe.available():
                logger.warning("%s not found on PATH; music files will fail to probe", probe.binary)
            results = await library.scan_libraries()
            for name, result in results.items():
                print(
                    f"{name}: {result.scanned} files, {result.added} added, {result.linked} linked, "
                    f"{result.skipped} unchanged, {result.images} images, {result.errors} errors"
                )
        elif args.command == "serve":
            web = WebServer(db)
            await web.serve(
                host=args.host or config.web.host,
                port=args.port or config.web.port,
            )
    finally:
        await db.close()
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the application."""
    args = parse_args(argv)
    setup_logging(verbose=args.verbose)

    try:
        reload_config(args.config)
        return asyncio.run(run(args))
    except KeyboardInterrupt:
        logger.info("Shutdown requested by user")
    except Exception as e:
        logger.exception("Fatal error: %s", e)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
