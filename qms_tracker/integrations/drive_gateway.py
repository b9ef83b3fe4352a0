"""
Google Drive Gateway — folder listings for form instances.

Each catalog row links to a Drive folder holding its filled instances. This
gateway lists those folders; it never modifies Drive.

Folder links accepted by ``extract_folder_id``:
    https://drive.google.com/drive/folders/<id>?usp=sharing
    https://drive.google.com/open?id=<id>
    <id>
Empty links and links containing the "No Files Yet" placeholder are skipped
without a request.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable

from qms_tracker.core.exceptions import SourceUnavailableError
from qms_tracker.integrations.base import GoogleGateway
from qms_tracker.models.qms import NO_FILES_SENTINEL, FileArtifact

logger = logging.getLogger(__name__)

DRIVE_FILES_URL = "https://www.googleapis.com/drive/v3/files"
FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"
_FILE_FIELDS = "nextPageToken, files(id, name, webViewLink, createdTime, mimeType, description)"
_PAGE_SIZE = 1000
_MAX_PAGES = 20

_FOLDER_PATH_RE = re.compile(r"/folders/([A-Za-z0-9_-]+)")
_ID_PARAM_RE = re.compile(r"[?&]id=([A-Za-z0-9_-]+)")
_BARE_ID_RE = re.compile(r"^[A-Za-z0-9_-]{10,}$")


def should_skip(folder_link: str | None) -> bool:
    link = (folder_link or "").strip()
    return not link or NO_FILES_SENTINEL in link


def extract_folder_id(folder_link: str | None) -> str | None:
    """Return the Drive folder id in a link, or None if there is none."""
    if should_skip(folder_link):
        return None
    link = folder_link.strip()
    for pattern in (_FOLDER_PATH_RE, _ID_PARAM_RE):
        match = pattern.search(link)
        if match:
            return match.group(1)
    if _BARE_ID_RE.match(link):
        return link
    return None


class DriveGateway(GoogleGateway):
    """Google Drive v3 files API, read-only.

    Usage:
        from qms_tracker.integrations import drive_gateway as drive_module
        files = drive_module.drive_gateway.list_files(folder_link)
    """

    name = "drive"

    def list_files(self, folder_link: str) -> list[FileArtifact]:
        """List the non-trashed files of a folder, newest first.

        Returns [] for skipped or unparseable links.

        Raises:
            SourceUnavailableError: Drive rejected the listing or is unreachable.
        """
        folder_id = extract_folder_id(folder_link)
        if folder_id is None:
            if not should_skip(folder_link):
                logger.warning("No folder id in link %r", folder_link)
            return []

        params = {
            "q": f"'{folder_id}' in parents and trashed = false and mimeType != '{FOLDER_MIME_TYPE}'",
            "fields": _FILE_FIELDS,
            "orderBy": "createdTime desc",
            "pageSize": _PAGE_SIZE,
            "supportsAllDrives": "true",
            "includeItemsFromAllDrives": "true",
        }
        files: list[FileArtifact] = []
        page_token = None
        for _ in range(_MAX_PAGES):
            page_params = dict(params)
            if page_token:
                page_params["pageToken"] = page_token
            result = self.request("GET", DRIVE_FILES_URL, params=page_params)
            if not result.ok:
                raise SourceUnavailableError("drive", result.error or "unknown error", result.status_code)
            body = result.data or {}
            files.extend(FileArtifact.from_drive(item) for item in body.get("files", []))
            page_token = body.get("nextPageToken")
            if not page_token:
                break
        else:
            logger.warning("Folder %s has more than %d pages; listing truncated", folder_id, _MAX_PAGES)
        return files

    def batch_list_files(self, folder_links: Iterable[str]) -> dict[str, list[FileArtifact]]:
        """List many folders. Keyed by the link exactly as given.

        Skipped links are not queried. A folder whose listing fails is left
        out of the result, so the caller keeps its last-known count.
        """
        out: dict[str, list[FileArtifact]] = {}
        failed = 0
        for link in dict.fromkeys(folder_links):
            if should_skip(link):
                continue
            try:
                out[link] = self.list_files(link)
            except SourceUnavailableError as exc:
                failed += 1
                logger.warning("Drive listing failed for %s: %s", link, exc)
        if failed:
            logger.warning("Drive batch listing: %d folder(s) unavailable", failed)
        return out

    def batch_list_counts(self, folder_links: Iterable[str]) -> dict[str, int]:
        """File count per folder link; same skipping rules as batch_list_files."""
        return {link: len(files) for link, files in self.batch_list_files(folder_links).items()}


# Module-level singleton, configured by the app factory.
drive_gateway = DriveGateway()
