# gdrive.py
import io
import json
import logging
import threading
from typing import Iterator, Optional

import httplib2
from google.oauth2 import service_account
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from googleapiclient.http import MediaIoBaseDownload

from .exceptions import NotFoundError, PermanentError, TransientError
from .storage.base import StorageClient
from .storage.dto import FOLDER_MIME_TYPE, IMAGE_MIME_PREFIX, ChildFilter, Entry, EntryPage

SCOPES = ["https://www.googleapis.com/auth/drive.readonly"]

ENTRY_FIELDS = "id, name, mimeType, createdTime, thumbnailLink, webViewLink, webContentLink"
LIST_FIELDS = f"nextPageToken, files({ENTRY_FIELDS})"

# Statuses worth retrying later; the client itself never retries.
TRANSIENT_STATUSES = {408, 429, 500, 502, 503, 504}


def _quote(value: str) -> str:
    """Escapes a value for use inside a single-quoted Drive query literal."""
    return value.replace("\\", "\\\\").replace("'", "\\'")


def build_query(parent_id: str, child_filter: ChildFilter) -> str:
    """Translates a ChildFilter into a Drive `q` expression."""
    clauses = [f"'{_quote(parent_id)}' in parents"]
    if child_filter.kind == "folder":
        clauses.append(f"mimeType = '{FOLDER_MIME_TYPE}'")
    elif child_filter.kind == "image":
        clauses.append(f"mimeType contains '{IMAGE_MIME_PREFIX}'")
    if child_filter.name is not None:
        clauses.append(f"name = '{_quote(child_filter.name)}'")
    clauses.append("trashed = false")
    return " and ".join(clauses)


def translate_error(error: Exception, operation: str, target_id: str) -> Exception:
    """
    Maps a Drive/transport failure to NotFoundError, TransientError or PermanentError,
    keeping the original exception as the cause.
    """
    if isinstance(error, HttpError):
        status = error.resp.status
        if status == 404:
            return NotFoundError(target_id)
        if status in TRANSIENT_STATUSES:
            return TransientError(
                f"Google Drive {operation} failed for '{target_id}' with status {status}."
            )
        return PermanentError(
            f"Google Drive {operation} failed for '{target_id}' with status {status}."
        )
    return TransientError(f"Google Drive {operation} failed for '{target_id}': {error}")


def load_credentials(
    credentials_json: Optional[str] = None, token_json: Optional[str] = None
):
    """
    Builds read-only Google credentials, preferring a service account key
    over an authorized user token.
    """
    if credentials_json:
        info = json.loads(credentials_json)
        if info.get("type") == "service_account":
            return service_account.Credentials.from_service_account_info(
                info, scopes=SCOPES
            )
        if token_json is None:
            raise PermanentError(
                "GDRIVE_CREDENTIALS_JSON is not a service account key and no GDRIVE_TOKEN_JSON was given."
            )
    if not token_json:
        raise PermanentError("No Google Drive credentials configured.")

    creds = Credentials.from_authorized_user_info(info=json.loads(token_json))
    if credentials_json:
        # OAuth client secrets may be wrapped in "installed" or "web".
        client = json.loads(credentials_json)
        client = client.get("installed") or client.get("web") or client
        if "client_id" in client and "client_secret" in client:
            creds = Credentials(
                token=creds.token,
                refresh_token=creds.refresh_token,
                token_uri=creds.token_uri,
                client_id=client["client_id"],
                client_secret=client["client_secret"],
                scopes=creds.scopes,
            )
    return creds


class GoogleDriveClient(StorageClient):
    """
    Client for reading folders and files from the Google Drive API, implementing
    the StorageClient interface.

    The Drive service object wraps an httplib2 transport that is not thread-safe,
    so each worker thread gets its own service, and every download gets a
    dedicated one since a stream may be resumed from different threads.
    """

    def __init__(self, credentials_json: Optional[str] = None, token_json: Optional[str] = None):
        try:
            self.credentials = load_credentials(credentials_json, token_json)
            self._local = threading.local()
            # Build once eagerly so broken credentials fail at startup.
            self._local.service = self._build_service()
            logging.info("Google Drive client initialized successfully.")
        except Exception as e:
            logging.error(f"Failed to initialize Google Drive client. Error: {e}")
            raise

    def _build_service(self):
        return build("drive", "v3", credentials=self.credentials, cache_discovery=False)

    @property
    def service(self):
        service = getattr(self._local, "service", None)
        if service is None:
            service = self._build_service()
            self._local.service = service
        return service

    def list_children(
        self,
        parent_id: str,
        child_filter: ChildFilter,
        page_token: Optional[str] = None,
        page_size: Optional[int] = None,
        order_by: Optional[str] = None,
    ) -> EntryPage:
        """
        Lists one page of a folder's children. The page token is passed to Drive as is.
        """
        params = {"q": build_query(parent_id, child_filter), "fields": LIST_FIELDS}
        if page_token:
            params["pageToken"] = page_token
        if page_size:
            params["pageSize"] = page_size
        if order_by:
            params["orderBy"] = order_by

        try:
            logging.debug(f"Listing children of '{parent_id}' with query: {params['q']}")
            response = self.service.files().list(**params).execute()
        except (HttpError, httplib2.HttpLib2Error, OSError) as e:
            logging.error(f"Failed to list children of folder '{parent_id}': {e}")
            raise translate_error(e, "list", parent_id) from e

        files = response.get("files", [])
        if not files and not page_token:
            # Drive answers a query on an unknown parent with an empty listing.
            self._ensure_exists(parent_id)
        return EntryPage(
            entries=[Entry.model_validate(item) for item in files],
            next_page_token=response.get("nextPageToken") or None,
        )

    def _ensure_exists(self, file_id: str) -> None:
        """Raises NotFoundError when Drive has no entry with this id."""
        try:
            self.service.files().get(fileId=file_id, fields="id").execute()
        except (HttpError, httplib2.HttpLib2Error, OSError) as e:
            logging.error(f"Failed to look up '{file_id}': {e}")
            raise translate_error(e, "get", file_id) from e

    def get_metadata(self, file_id: str) -> Entry:
        try:
            item = self.service.files().get(fileId=file_id, fields=ENTRY_FIELDS).execute()
        except (HttpError, httplib2.HttpLib2Error, OSError) as e:
            logging.error(f"Failed to get metadata for '{file_id}': {e}")
            raise translate_error(e, "get", file_id) from e
        return Entry.model_validate(item)

    def open_stream(self, file_id: str, chunk_size: int) -> Iterator[bytes]:
        """
        Downloads a file chunk by chunk. Each chunk is one ranged request to
        Drive, issued only when the previous chunk has been consumed.
        """
        service = self._build_service()
        request = service.files().get_media(fileId=file_id)
        buffer = io.BytesIO()
        downloader = MediaIoBaseDownload(buffer, request, chunksize=chunk_size)
        done = False
        try:
            while not done:
                try:
                    _, done = downloader.next_chunk()
                except (HttpError, httplib2.HttpLib2Error, OSError) as e:
                    logging.error(f"Failed to download file with ID '{file_id}': {e}")
                    raise translate_error(e, "download", file_id) from e
                chunk = buffer.getvalue()
                buffer.seek(0)
                buffer.truncate(0)
                if chunk:
                    yield chunk
        finally:
            buffer.close()
            service.close()
