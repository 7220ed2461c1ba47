"""
Routes in the Dropbox ``files`` namespace.

Every function takes a DropboxClient as its first argument:

    client = DropboxClient(os.environ["DROPBOX_TOKEN"])
    folder_list = files.list_folder(client, "/path/to/folder")
"""

import io
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, BinaryIO, Dict, Generator, List, Optional, Tuple, Union

from dbox.client import DropboxClient, Response
from dbox.structs import FileMetadata, FolderList, FolderMetadata, Metadata, format_timestamp, parse_timestamp

logger = logging.getLogger(__name__)

# Dropbox caps a single files/upload call at 150 MB
UPLOAD_SESSION_CHUNK_SIZE = 8 * 1024 * 1024
LONGPOLL_MIN_TIMEOUT = 30
LONGPOLL_MAX_TIMEOUT = 480
# Dropbox adds up to 90 seconds of jitter to longpoll responses
LONGPOLL_JITTER = 90

Contents = Union[bytes, str, BinaryIO]


def normalize_path(path: Optional[str]) -> str:
    """
    Normalize a path for the Dropbox API.

    The root folder is the empty string, other paths start with ``/`` and
    have no trailing slash. ``id:``, ``rev:`` and ``ns:`` references are
    passed through.
    """
    if not path or path == "/":
        return ""
    if path.startswith(("id:", "rev:", "ns:")):
        return path
    if not path.startswith("/"):
        path = "/" + path
    return path.rstrip("/")


def _read_contents(contents: Contents) -> bytes:
    if isinstance(contents, bytes):
        return contents
    if isinstance(contents, str):
        return contents.encode("utf-8")
    data = contents.read()
    return data.encode("utf-8") if isinstance(data, str) else data


class WriteMode(str, Enum):
    """What Dropbox does when an upload conflicts with an existing file."""

    ADD = "add"
    OVERWRITE = "overwrite"
    UPDATE = "update"


def _write_mode_arg(mode: WriteMode, rev: Optional[str]) -> Union[str, Dict[str, str]]:
    if mode is WriteMode.UPDATE:
        if not rev:
            raise ValueError("WriteMode.UPDATE requires the rev of the file being replaced")
        return {".tag": "update", "update": rev}
    return mode.value


@dataclass
class UploadOptions:
    """Optional arguments to upload()."""

    mode: WriteMode = WriteMode.ADD
    rev: Optional[str] = None
    autorename: bool = False
    client_modified: Optional[datetime] = None
    mute: bool = False


@dataclass
class CommitInfo:
    """Where and how an upload session is committed."""

    path: str
    mode: WriteMode = WriteMode.ADD
    rev: Optional[str] = None
    autorename: bool = False
    client_modified: Optional[datetime] = None
    mute: bool = False

    @classmethod
    def from_options(cls, path: str, options: Optional[UploadOptions] = None) -> "CommitInfo":
        options = options or UploadOptions()
        return cls(
            path=path,
            mode=options.mode,
            rev=options.rev,
            autorename=options.autorename,
            client_modified=options.client_modified,
            mute=options.mute,
        )

    def to_arg(self) -> Dict[str, Any]:
        arg: Dict[str, Any] = {
            "path": normalize_path(self.path),
            "mode": _write_mode_arg(self.mode, self.rev),
            "autorename": self.autorename,
            "mute": self.mute,
        }
        if self.client_modified is not None:
            arg["client_modified"] = format_timestamp(self.client_modified)
        return arg


@dataclass
class UploadSessionCursor:
    session_id: str
    offset: int = 0

    def to_arg(self) -> Dict[str, Any]:
        return {"session_id": self.session_id, "offset": self.offset}


class ThumbnailFormat(str, Enum):
    JPEG = "jpeg"
    PNG = "png"
    WEBP = "webp"


class ThumbnailSize(str, Enum):
    W32H32 = "w32h32"
    W64H64 = "w64h64"
    W128H128 = "w128h128"
    W256H256 = "w256h256"
    W480H320 = "w480h320"
    W640H480 = "w640h480"
    W960H640 = "w960h640"
    W1024H768 = "w1024h768"
    W2048H1536 = "w2048h1536"

    @classmethod
    def from_dimensions(cls, width: int, height: int) -> "ThumbnailSize":
        """Look up the size for width x height; Dropbox only renders the listed sizes."""
        try:
            return cls(f"w{width}h{height}")
        except ValueError:
            raise ValueError(f"Unsupported thumbnail size: {width}x{height}") from None


@dataclass
class ThumbnailOptions:
    format: ThumbnailFormat = ThumbnailFormat.JPEG
    size: ThumbnailSize = ThumbnailSize.W64H64


@dataclass
class ListFolderOptions:
    recursive: bool = False
    include_media_info: bool = False
    include_deleted: bool = False


# files/list_folder/get_latest_cursor takes the same flags
GetCursorOptions = ListFolderOptions


@dataclass
class FolderListLongpoll:
    changes: bool = False
    backoff: Optional[int] = None


@dataclass
class ListRevisions:
    is_deleted: bool = False
    entries: List[FileMetadata] = field(default_factory=list)
    server_deleted: Optional[datetime] = None


class SearchMode(str, Enum):
    FILENAME = "filename"
    FILENAME_AND_CONTENT = "filename_and_content"
    DELETED_FILENAME = "deleted_filename"


@dataclass
class SearchOptions:
    max_results: int = 100
    mode: SearchMode = SearchMode.FILENAME


class SearchMatchType(str, Enum):
    FILENAME = "filename"
    CONTENT = "file_content"
    BOTH = "filename_and_content"
    IMAGE_CONTENT = "image_content"
    OTHER = "other"

    @classmethod
    def from_tag(cls, tag: Optional[str]) -> "SearchMatchType":
        try:
            return cls(tag)
        except ValueError:
            return cls.OTHER


@dataclass
class SearchMatch:
    match_type: SearchMatchType
    metadata: Metadata


@dataclass
class Search:
    matches: List[SearchMatch] = field(default_factory=list)
    more: bool = False
    cursor: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Search":
        matches = []
        for match in data.get("matches", []):
            # search_v2 wraps entry metadata in a MetadataV2 union
            wrapped = match.get("metadata", {})
            if wrapped.get(".tag") == "other":
                continue
            metadata = wrapped.get("metadata", wrapped)
            match_type = (match.get("match_type") or {}).get(".tag")
            matches.append(SearchMatch(SearchMatchType.from_tag(match_type), Metadata.from_dict(metadata)))
        return cls(matches=matches, more=data.get("has_more", False), cursor=data.get("cursor"))


# Relocation


def copy_(client: DropboxClient, from_path: str, to_path: str, autorename: bool = False) -> Metadata:
    """
    Copy a file or folder.

    Example:
        metadata = files.copy_(client, "/Path/to/existing/file", "/Path/to/new/file")
    """
    arg = {"from_path": normalize_path(from_path), "to_path": normalize_path(to_path), "autorename": autorename}
    result = client.api("files/copy_v2", arg)
    return Metadata.from_dict(result["metadata"])


def move_(client: DropboxClient, from_path: str, to_path: str, autorename: bool = False) -> Metadata:
    """Move a file or folder."""
    arg = {"from_path": normalize_path(from_path), "to_path": normalize_path(to_path), "autorename": autorename}
    result = client.api("files/move_v2", arg)
    return Metadata.from_dict(result["metadata"])


def create_folder(client: DropboxClient, path: str, autorename: bool = False) -> FolderMetadata:
    """Create a folder."""
    result = client.api("files/create_folder_v2", {"path": normalize_path(path), "autorename": autorename})
    return FolderMetadata.from_dict(result["metadata"])


def delete(client: DropboxClient, path: str) -> Metadata:
    """Delete a file or folder (recoverable from the Dropbox web UI)."""
    result = client.api("files/delete_v2", {"path": normalize_path(path)})
    return Metadata.from_dict(result["metadata"])


def permanently_delete(client: DropboxClient, path: str) -> None:
    """Permanently delete a file or folder. Only available to Dropbox Business apps."""
    client.api("files/permanently_delete", {"path": normalize_path(path)})


def restore(client: DropboxClient, path: str, rev: str) -> FileMetadata:
    """Restore a file to a specific revision."""
    result = client.api("files/restore", {"path": normalize_path(path), "rev": rev})
    return FileMetadata.from_dict(result)


# Metadata and listings


def get_metadata(client: DropboxClient, path: str, include_media_info: bool = False) -> Metadata:
    arg = {"path": normalize_path(path), "include_media_info": include_media_info}
    return Metadata.from_dict(client.api("files/get_metadata", arg))


def _list_folder_arg(path: str, options: Optional[ListFolderOptions]) -> Dict[str, Any]:
    options = options or ListFolderOptions()
    return {
        "path": normalize_path(path),
        "recursive": options.recursive,
        "include_media_info": options.include_media_info,
        "include_deleted": options.include_deleted,
    }


def list_folder(client: DropboxClient, path: str, options: Optional[ListFolderOptions] = None) -> FolderList:
    """
    List the entries of a folder.

    Use list_folder_continue() with the returned cursor while ``has_more`` is set.
    """
    return FolderList.from_dict(client.api("files/list_folder", _list_folder_arg(path, options)))


def list_folder_continue(client: DropboxClient, cursor: str) -> FolderList:
    return FolderList.from_dict(client.api("files/list_folder/continue", {"cursor": cursor}))


def list_folder_get_latest_cursor(client: DropboxClient, path: str, options: Optional[GetCursorOptions] = None) -> str:
    """Get a cursor for the current state of a folder without listing it."""
    result = client.api("files/list_folder/get_latest_cursor", _list_folder_arg(path, options))
    return result["cursor"]


def list_folder_longpoll(client: DropboxClient, cursor: str, timeout: int = LONGPOLL_MIN_TIMEOUT) -> FolderListLongpoll:
    """
    Block until the folder behind ``cursor`` changes or ``timeout`` seconds pass.

    The timeout is clamped to the 30-480 second range Dropbox accepts. When
    ``backoff`` is set the caller should wait that many seconds before
    polling again.
    """
    timeout = max(LONGPOLL_MIN_TIMEOUT, min(LONGPOLL_MAX_TIMEOUT, timeout))
    result = client.notify(
        "files/list_folder/longpoll",
        {"cursor": cursor, "timeout": timeout},
        timeout=timeout + LONGPOLL_JITTER,
    )
    return FolderListLongpoll(changes=result.get("changes", False), backoff=result.get("backoff"))


def list_folder_recursive(
    client: DropboxClient, path: str, extensions: Optional[List[str]] = None
) -> Generator[FileMetadata, None, None]:
    """
    List all files below a folder, following pagination.

    Args:
        client: DropboxClient instance
        path: Path to the folder in Dropbox (e.g., "/Photos")
        extensions: File extensions to keep (e.g., [".jpg", ".png"]), case-insensitive.
                    All files are returned when omitted.

    Yields:
        FileMetadata for each file (folders are skipped)
    """
    wanted = {e.lower() for e in extensions} if extensions else None
    logger.info(f"Listing files in: {normalize_path(path) or '/'}")

    result = list_folder(client, path, ListFolderOptions(recursive=True))
    while True:
        for entry in result.entries:
            if not isinstance(entry, FileMetadata):
                continue
            if wanted is None or os.path.splitext(entry.name.lower())[1] in wanted:
                yield entry

        if not result.has_more:
            break
        result = list_folder_continue(client, result.cursor)


def list_revisions(client: DropboxClient, path: str, limit: int = 10) -> ListRevisions:
    result = client.api("files/list_revisions", {"path": normalize_path(path), "mode": "path", "limit": limit})
    return ListRevisions(
        is_deleted=result.get("is_deleted", False),
        entries=[FileMetadata.from_dict(entry) for entry in result.get("entries", [])],
        server_deleted=parse_timestamp(result.get("server_deleted")),
    )


def search(client: DropboxClient, path: str, query: str, options: Optional[SearchOptions] = None) -> Search:
    """Search for files and folders below ``path`` whose names (or contents) match ``query``."""
    options = options or SearchOptions()
    search_options: Dict[str, Any] = {
        "max_results": options.max_results,
        "file_status": "deleted" if options.mode is SearchMode.DELETED_FILENAME else "active",
        "filename_only": options.mode is not SearchMode.FILENAME_AND_CONTENT,
    }
    path = normalize_path(path)
    if path:
        search_options["path"] = path

    return Search.from_dict(client.api("files/search_v2", {"query": query, "options": search_options}))


def search_continue(client: DropboxClient, cursor: str) -> Search:
    return Search.from_dict(client.api("files/search/continue_v2", {"cursor": cursor}))


# Downloads


def download(client: DropboxClient, path: str) -> Tuple[FileMetadata, Response]:
    """
    Download a file.

    Example:
        metadata, response = files.download(client, "/Path/to/file")
        data = response.body
    """
    resp = client.content_download("files/download", {"path": normalize_path(path)})
    return FileMetadata.from_dict(resp.api_result), resp


def _save_stream(resp: Response, dest_path: str) -> None:
    """Write the body next to ``dest_path`` and move it into place once complete."""
    directory = os.path.dirname(os.path.abspath(dest_path))
    os.makedirs(directory, exist_ok=True)
    partial_path = f"{dest_path}.part"
    try:
        with open(partial_path, "wb") as f:
            for chunk in resp.iter_content():
                f.write(chunk)
        os.replace(partial_path, dest_path)
    finally:
        resp.close()
        if os.path.exists(partial_path):
            os.remove(partial_path)


def download_to_file(client: DropboxClient, dest_path: str, path: str) -> Tuple[FileMetadata, Response]:
    """Download a file straight to ``dest_path`` without holding it in memory."""
    logger.debug(f"Downloading: {path} -> {dest_path}")
    resp = client.content_download("files/download", {"path": normalize_path(path)}, stream=True)
    _save_stream(resp, dest_path)
    return FileMetadata.from_dict(resp.api_result), resp


def get_preview(client: DropboxClient, path: str) -> Tuple[FileMetadata, Response]:
    """Get a PDF or HTML preview of a document."""
    resp = client.content_download("files/get_preview", {"path": normalize_path(path)})
    return FileMetadata.from_dict(resp.api_result), resp


def get_preview_to_file(client: DropboxClient, dest_path: str, path: str) -> Tuple[FileMetadata, Response]:
    resp = client.content_download("files/get_preview", {"path": normalize_path(path)}, stream=True)
    _save_stream(resp, dest_path)
    return FileMetadata.from_dict(resp.api_result), resp


def _thumbnail_arg(path: str, options: Optional[ThumbnailOptions]) -> Dict[str, Any]:
    options = options or ThumbnailOptions()
    return {
        "resource": {".tag": "path", "path": normalize_path(path)},
        "format": options.format.value,
        "size": options.size.value,
    }


def get_thumbnail(
    client: DropboxClient, path: str, options: Optional[ThumbnailOptions] = None
) -> Tuple[FileMetadata, Response]:
    """Get a thumbnail of an image (jpeg, 64x64 unless ``options`` say otherwise)."""
    resp = client.content_download("files/get_thumbnail_v2", _thumbnail_arg(path, options))
    return FileMetadata.from_dict(resp.api_result.get("file_metadata") or {}), resp


def get_thumbnail_to_file(
    client: DropboxClient, dest_path: str, path: str, options: Optional[ThumbnailOptions] = None
) -> Tuple[FileMetadata, Response]:
    resp = client.content_download("files/get_thumbnail_v2", _thumbnail_arg(path, options), stream=True)
    _save_stream(resp, dest_path)
    return FileMetadata.from_dict(resp.api_result.get("file_metadata") or {}), resp


# Uploads


def upload(client: DropboxClient, contents: Contents, path: str, options: Optional[UploadOptions] = None) -> FileMetadata:
    """
    Upload a file of up to 150 MB. Use upload_large() for bigger files.

    Args:
        client: DropboxClient instance
        contents: File contents as bytes, text (UTF-8 encoded) or a binary file object
        path: Destination path in Dropbox
        options: Write mode, autorename, client_modified, mute
    """
    data = _read_contents(contents)
    arg = CommitInfo.from_options(path, options).to_arg()
    result = client.content_upload("files/upload", arg, data)
    return FileMetadata.from_dict(result)


def upload_session_start(client: DropboxClient, f: Contents, close: bool = False) -> str:
    """Start an upload session with the first chunk of data; returns the session id."""
    result = client.content_upload("files/upload_session/start", {"close": close}, _read_contents(f))
    return result["session_id"]


def upload_session_append(client: DropboxClient, f: Contents, session_id: str, offset: int, close: bool = False) -> int:
    """
    Append a chunk to an upload session.

    Returns:
        Offset for the next append (``offset`` plus the bytes sent)
    """
    data = _read_contents(f)
    cursor = UploadSessionCursor(session_id, offset)
    client.content_upload("files/upload_session/append_v2", {"cursor": cursor.to_arg(), "close": close}, data)
    return offset + len(data)


def upload_session_finish(client: DropboxClient, f: Contents, cursor: UploadSessionCursor, commit: CommitInfo) -> FileMetadata:
    """Send the final chunk and commit the session to ``commit.path``."""
    arg = {"cursor": cursor.to_arg(), "commit": commit.to_arg()}
    result = client.content_upload("files/upload_session/finish", arg, _read_contents(f))
    return FileMetadata.from_dict(result)


def upload_large(
    client: DropboxClient,
    f: Union[bytes, BinaryIO],
    path: str,
    options: Optional[UploadOptions] = None,
    chunk_size: int = UPLOAD_SESSION_CHUNK_SIZE,
) -> FileMetadata:
    """
    Upload a file of any size, in ``chunk_size`` pieces through an upload session.

    Files smaller than one chunk go through a single upload() call.
    """
    if isinstance(f, bytes):
        f = io.BytesIO(f)

    first = f.read(chunk_size)
    if len(first) < chunk_size:
        return upload(client, first, path, options)

    session_id = upload_session_start(client, first)
    offset = len(first)
    logger.debug(f"Started upload session for {path}")

    while True:
        chunk = f.read(chunk_size)
        if len(chunk) < chunk_size:
            cursor = UploadSessionCursor(session_id, offset)
            return upload_session_finish(client, chunk, cursor, CommitInfo.from_options(path, options))
        offset = upload_session_append(client, chunk, session_id, offset)
