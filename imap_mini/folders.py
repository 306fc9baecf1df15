"""Folder enumeration and creation.

Folder lists are fetched fresh on every call; they can change between
calls and are never cached.
"""

from __future__ import annotations

import structlog

from .connection import ConnectionManager
from .models import FolderEntry

logger = structlog.get_logger()

SPECIAL_USE_FLAGS = frozenset(
    {"\\all", "\\archive", "\\drafts", "\\flagged", "\\junk", "\\sent", "\\trash"}
)


async def list_folders(manager: ConnectionManager) -> list[FolderEntry]:
    """List every folder of the account, in server order."""
    transport = await manager.connect()
    listings = await transport.list_mailboxes()

    folders: list[FolderEntry] = []
    for listing in listings:
        special_use = next((f for f in listing.flags if f.lower() in SPECIAL_USE_FLAGS), None)
        folders.append(
            FolderEntry(
                path=listing.path,
                name=listing.name,
                delimiter=listing.delimiter,
                special_use=special_use,
                selectable=listing.selectable,
            )
        )
    return folders


async def create_folder(manager: ConnectionManager, path: str) -> str:
    """Create *path*; whether an existing folder is an error is up to the server."""
    transport = await manager.connect()
    await transport.create(path)
    logger.info("folder_created", path=path)
    return path
