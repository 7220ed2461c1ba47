"""
Typed structures decoded from Dropbox API JSON.

Dropbox encodes unions with a ``.tag`` key; ``Metadata.from_dict`` dispatches
on it to return a FileMetadata, FolderMetadata or DeletedMetadata.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from dbox.exceptions import ClientError

DROPBOX_TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse a Dropbox timestamp (``2015-05-12T15:50:38Z``)."""
    if not value:
        return None
    return datetime.strptime(value, DROPBOX_TIMESTAMP_FORMAT)


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.strftime(DROPBOX_TIMESTAMP_FORMAT)


class Tag(str, Enum):
    FILE = "file"
    FOLDER = "folder"
    DELETED = "deleted"


@dataclass
class SharingInfo:
    read_only: bool = False
    parent_shared_folder_id: Optional[str] = None
    shared_folder_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["SharingInfo"]:
        if not data:
            return None
        return cls(
            read_only=data.get("read_only", False),
            parent_shared_folder_id=data.get("parent_shared_folder_id"),
            shared_folder_id=data.get("shared_folder_id"),
        )


@dataclass
class Metadata:
    """Common metadata for files, folders and deleted entries."""

    name: str = ""
    path_lower: Optional[str] = None
    path_display: Optional[str] = None

    tag = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Metadata":
        """Decode a metadata union, honouring its ``.tag``."""
        tag = data.get(".tag")
        if tag == Tag.FILE.value:
            return FileMetadata.from_dict(data)
        if tag == Tag.FOLDER.value:
            return FolderMetadata.from_dict(data)
        if tag == Tag.DELETED.value:
            return DeletedMetadata.from_dict(data)
        raise ClientError(f"Unknown metadata tag: {tag!r}")

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {}
        if self.tag is not None:
            result[".tag"] = self.tag.value
        result.update(name=self.name, path_lower=self.path_lower, path_display=self.path_display)
        return result


@dataclass
class FileMetadata(Metadata):
    id: str = ""
    client_modified: Optional[datetime] = None
    server_modified: Optional[datetime] = None
    rev: str = ""
    size: int = 0
    content_hash: Optional[str] = None
    sharing_info: Optional[SharingInfo] = None

    tag = Tag.FILE

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FileMetadata":
        return cls(
            name=data.get("name", ""),
            path_lower=data.get("path_lower"),
            path_display=data.get("path_display"),
            id=data.get("id", ""),
            client_modified=parse_timestamp(data.get("client_modified")),
            server_modified=parse_timestamp(data.get("server_modified")),
            rev=data.get("rev", ""),
            size=data.get("size", 0),
            content_hash=data.get("content_hash"),
            sharing_info=SharingInfo.from_dict(data.get("sharing_info")),
        )

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result.update(
            id=self.id,
            client_modified=format_timestamp(self.client_modified),
            server_modified=format_timestamp(self.server_modified),
            rev=self.rev,
            size=self.size,
            content_hash=self.content_hash,
        )
        return result


@dataclass
class FolderMetadata(Metadata):
    id: str = ""
    sharing_info: Optional[SharingInfo] = None

    tag = Tag.FOLDER

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FolderMetadata":
        return cls(
            name=data.get("name", ""),
            path_lower=data.get("path_lower"),
            path_display=data.get("path_display"),
            id=data.get("id", ""),
            sharing_info=SharingInfo.from_dict(data.get("sharing_info")),
        )

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result["id"] = self.id
        return result


@dataclass
class DeletedMetadata(Metadata):
    tag = Tag.DELETED

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DeletedMetadata":
        return cls(
            name=data.get("name", ""),
            path_lower=data.get("path_lower"),
            path_display=data.get("path_display"),
        )


@dataclass
class FolderList:
    """Result of ``files/list_folder`` and ``files/list_folder/continue``."""

    entries: List[Metadata] = field(default_factory=list)
    cursor: str = ""
    has_more: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FolderList":
        return cls(
            entries=[Metadata.from_dict(entry) for entry in data.get("entries", [])],
            cursor=data.get("cursor", ""),
            has_more=data.get("has_more", False),
        )
