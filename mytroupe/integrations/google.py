"""
mytroupe.integrations.google — Google Drive, Forms & Sheets Clients
=====================================================================

Service-account clients built with ``googleapiclient``.  The client
library is blocking, so every request goes through :func:`execute`,
which runs it on a worker thread and keeps the event loop free.

A service object wraps a single ``httplib2`` connection that must not be
used from two threads at once.  Callers that run concurrently each build
their own service with the ``get_*`` factories; the folder walk is
sequential and keeps one Drive service for the whole traversal.
"""

from __future__ import annotations

import asyncio
import logging

from google.oauth2 import service_account
from googleapiclient.discovery import build

from mytroupe.config import MyTroupeConfig
from mytroupe.constants import DRIVE_FOLDER_MIME, EVENT_DATA_SOURCE_MIME_TYPES

logger = logging.getLogger(__name__)


def _credentials(cfg: MyTroupeConfig):
    return service_account.Credentials.from_service_account_file(
        cfg.google_credentials_path, scopes=list(cfg.google_scopes)
    )


def get_drive(cfg: MyTroupeConfig):
    """Drive v3 service"""
    return build("drive", "v3", credentials=_credentials(cfg), cache_discovery=False)


def get_forms(cfg: MyTroupeConfig):
    """Forms v1 service"""
    return build("forms", "v1", credentials=_credentials(cfg), cache_discovery=False)


def get_sheets(cfg: MyTroupeConfig):
    """Sheets v4 service"""
    return build("sheets", "v4", credentials=_credentials(cfg), cache_discovery=False)


async def execute(request):
    """Run a blocking googleapiclient request on a worker thread."""
    return await asyncio.to_thread(request.execute)


class DriveFolderLister:
    """Lists the sub-folders and event sources directly inside a Drive folder."""

    def __init__(self, drive):
        self.drive = drive

    async def list_children(self, folder_id: str) -> list[dict]:
        mimes = [DRIVE_FOLDER_MIME, *EVENT_DATA_SOURCE_MIME_TYPES.values()]
        mime_query = " or ".join(f"mimeType = '{m}'" for m in mimes)
        q = f"({mime_query}) and '{folder_id}' in parents and trashed = false"

        files: list[dict] = []
        page_token = None
        while True:
            response = await execute(
                self.drive.files().list(  # pylint: disable=no-member
                    q=q,
                    fields="nextPageToken, files(id, name, mimeType, createdTime)",
                    pageToken=page_token,
                    supportsAllDrives=True,
                    includeItemsFromAllDrives=True,
                )
            )
            files.extend(response.get("files", []))
            page_token = response.get("nextPageToken")
            if not page_token:
                break
        logger.debug("Folder %s has %d children", folder_id, len(files))
        return files
