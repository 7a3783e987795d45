"""
Herald - a personal music catalogue.

Herald ingests a music folder tree into SQLite and serves the catalogue over a
small REST API (JSON or EDN).
"""

__version__ = "0.1.0"
__author__ = "Herald Contributors"
__license__ = "MIT"

from herald.core.library import MediaLibrary
from herald.core.library_db import LibraryDb

__all__ = ["LibraryDb", "MediaLibrary", "__version__"]
