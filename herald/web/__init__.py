"""
Web layer for Herald: a read-only REST API over the catalogue, in JSON or EDN.
"""

from herald.web.server import WebServer

__all__ = ["WebServer"]
