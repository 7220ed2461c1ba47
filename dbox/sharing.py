"""
Routes in the Dropbox ``sharing`` namespace: shared folders, their members
and shared links.

Several folder operations may run asynchronously on the Dropbox side. They
return an async job id (or None when Dropbox finished synchronously), which
can be polled with check_job_status().
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Union

from dbox.client import DropboxClient
from dbox.files import normalize_path
from dbox.structs import format_timestamp, parse_timestamp


class _TaggedEnum(str, Enum):
    @classmethod
    def from_tag(cls, data: Union[Dict[str, Any], str, None]):
        tag = data.get(".tag") if isinstance(data, dict) else data
        try:
            return cls(tag)
        except ValueError:
            return cls("other")


class AccessLevel(_TaggedEnum):
    OWNER = "owner"
    EDITOR = "editor"
    VIEWER = "viewer"
    VIEWER_NO_COMMENT = "viewer_no_comment"
    OTHER = "other"


class MemberPolicy(_TaggedEnum):
    TEAM = "team"
    ANYONE = "anyone"
    OTHER = "other"


class AclUpdatePolicy(_TaggedEnum):
    OWNER = "owner"
    EDITORS = "editors"
    OTHER = "other"


class SharedLinkPolicy(_TaggedEnum):
    ANYONE = "anyone"
    TEAM = "team"
    MEMBERS = "members"
    OTHER = "other"


@dataclass
class MemberSelector:
    """Identifies a folder member by Dropbox account id or email."""

    kind: str
    value: str

    @classmethod
    def dropbox_id(cls, value: str) -> "MemberSelector":
        return cls("dropbox_id", value)

    @classmethod
    def email(cls, value: str) -> "MemberSelector":
        return cls("email", value)

    @classmethod
    def parse(cls, value: Union[str, "MemberSelector"]) -> "MemberSelector":
        """``dbid:``-prefixed strings are account ids, anything else is an email."""
        if isinstance(value, MemberSelector):
            return value
        if value.startswith("dbid:"):
            return cls.dropbox_id(value)
        return cls.email(value)

    def to_arg(self) -> Dict[str, str]:
        return {".tag": self.kind, self.kind: self.value}


@dataclass
class AddFolderMemberOptions:
    quiet: bool = False
    custom_message: Optional[str] = None
    access_level: AccessLevel = AccessLevel.EDITOR


@dataclass
class SharedFolderMetadata:
    shared_folder_id: str = ""
    name: str = ""
    path_lower: Optional[str] = None
    access_type: AccessLevel = AccessLevel.OTHER
    is_team_folder: bool = False
    is_inside_team_folder: bool = False
    member_policy: Optional[MemberPolicy] = None
    acl_update_policy: Optional[AclUpdatePolicy] = None
    shared_link_policy: Optional[SharedLinkPolicy] = None
    preview_url: Optional[str] = None
    time_invited: Optional[datetime] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SharedFolderMetadata":
        policy = data.get("policy") or {}
        return cls(
            shared_folder_id=data.get("shared_folder_id", ""),
            name=data.get("name", ""),
            path_lower=data.get("path_lower"),
            access_type=AccessLevel.from_tag(data.get("access_type")),
            is_team_folder=data.get("is_team_folder", False),
            is_inside_team_folder=data.get("is_inside_team_folder", False),
            member_policy=MemberPolicy.from_tag(policy["member_policy"]) if "member_policy" in policy else None,
            acl_update_policy=AclUpdatePolicy.from_tag(policy["acl_update_policy"]) if "acl_update_policy" in policy else None,
            shared_link_policy=SharedLinkPolicy.from_tag(policy["shared_link_policy"]) if "shared_link_policy" in policy else None,
            preview_url=data.get("preview_url"),
            time_invited=parse_timestamp(data.get("time_invited")),
        )


@dataclass
class SharedFolderList:
    entries: List[SharedFolderMetadata] = field(default_factory=list)
    cursor: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SharedFolderList":
        return cls(
            entries=[SharedFolderMetadata.from_dict(entry) for entry in data.get("entries", [])],
            cursor=data.get("cursor"),
        )


@dataclass
class JobStatus:
    """State of an asynchronous sharing job: in_progress, complete or failed."""

    status: str
    error: Optional[Dict[str, Any]] = None

    @property
    def is_complete(self) -> bool:
        return self.status == "complete"

    @property
    def is_failed(self) -> bool:
        return self.status == "failed"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "JobStatus":
        status = data.get(".tag", "other")
        return cls(status=status, error=data.get("failed") if status == "failed" else None)


@dataclass
class ShareFolderJobStatus(JobStatus):
    metadata: Optional[SharedFolderMetadata] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ShareFolderJobStatus":
        status = data.get(".tag", "other")
        return cls(
            status=status,
            error=data.get("failed") if status == "failed" else None,
            metadata=SharedFolderMetadata.from_dict(data) if status == "complete" else None,
        )


@dataclass
class ShareFolderLaunch:
    """Either the shared folder (completed synchronously) or an async job id."""

    metadata: Optional[SharedFolderMetadata] = None
    async_job_id: Optional[str] = None

    @property
    def is_complete(self) -> bool:
        return self.metadata is not None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ShareFolderLaunch":
        if data.get(".tag") == "async_job_id":
            return cls(async_job_id=data["async_job_id"])
        return cls(metadata=SharedFolderMetadata.from_dict(data))


@dataclass
class ShareFolderOptions:
    member_policy: MemberPolicy = MemberPolicy.ANYONE
    acl_update_policy: AclUpdatePolicy = AclUpdatePolicy.OWNER
    shared_link_policy: SharedLinkPolicy = SharedLinkPolicy.ANYONE
    force_async: bool = False


@dataclass
class UpdateFolderPolicyOptions:
    """Only the policies that are set are sent; the rest stay unchanged."""

    member_policy: Optional[MemberPolicy] = None
    acl_update_policy: Optional[AclUpdatePolicy] = None
    shared_link_policy: Optional[SharedLinkPolicy] = None


@dataclass
class CreateSharedLinkOptions:
    """Settings for a new shared link; unset fields use the account defaults."""

    requested_visibility: Optional[str] = None
    audience: Optional[str] = None
    expires: Optional[datetime] = None
    allow_download: Optional[bool] = None

    def to_arg(self) -> Dict[str, Any]:
        settings: Dict[str, Any] = {}
        if self.requested_visibility is not None:
            settings["requested_visibility"] = self.requested_visibility
        if self.audience is not None:
            settings["audience"] = self.audience
        if self.expires is not None:
            settings["expires"] = format_timestamp(self.expires)
        if self.allow_download is not None:
            settings["allow_download"] = self.allow_download
        return settings


@dataclass
class SharedLinkMetadata:
    url: str = ""
    name: str = ""
    tag: str = "file"
    id: Optional[str] = None
    path_lower: Optional[str] = None
    expires: Optional[datetime] = None
    visibility: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SharedLinkMetadata":
        permissions = data.get("link_permissions") or {}
        return cls(
            url=data.get("url", ""),
            name=data.get("name", ""),
            tag=data.get(".tag", "file"),
            id=data.get("id"),
            path_lower=data.get("path_lower"),
            expires=parse_timestamp(data.get("expires")),
            visibility=(permissions.get("resolved_visibility") or {}).get(".tag"),
        )


@dataclass
class UserInfo:
    account_id: str = ""
    email: Optional[str] = None
    display_name: Optional[str] = None
    same_team: bool = False
    team_member_id: Optional[str] = None


@dataclass
class GroupInfo:
    group_name: str = ""
    group_id: str = ""
    member_count: int = 0
    same_team: bool = False
    group_external_id: Optional[str] = None


@dataclass
class InviteeInfo:
    email: Optional[str] = None


@dataclass
class UserMembershipInfo:
    access_type: AccessLevel
    user: UserInfo


@dataclass
class GroupMembershipInfo:
    access_type: AccessLevel
    group: GroupInfo


@dataclass
class InviteeMembershipInfo:
    access_type: AccessLevel
    invitee: InviteeInfo


@dataclass
class SharedFolderMembers:
    users: List[UserMembershipInfo] = field(default_factory=list)
    groups: List[GroupMembershipInfo] = field(default_factory=list)
    invitees: List[InviteeMembershipInfo] = field(default_factory=list)
    cursor: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SharedFolderMembers":
        users = []
        for member in data.get("users", []):
            user = member.get("user", {})
            users.append(
                UserMembershipInfo(
                    AccessLevel.from_tag(member.get("access_type")),
                    UserInfo(
                        account_id=user.get("account_id", ""),
                        email=user.get("email"),
                        display_name=user.get("display_name"),
                        same_team=user.get("same_team", False),
                        team_member_id=user.get("team_member_id"),
                    ),
                )
            )

        groups = []
        for member in data.get("groups", []):
            group = member.get("group", {})
            groups.append(
                GroupMembershipInfo(
                    AccessLevel.from_tag(member.get("access_type")),
                    GroupInfo(
                        group_name=group.get("group_name", ""),
                        group_id=group.get("group_id", ""),
                        member_count=group.get("member_count", 0),
                        same_team=group.get("same_team", False),
                        group_external_id=group.get("group_external_id"),
                    ),
                )
            )

        invitees = []
        for member in data.get("invitees", []):
            invitee = member.get("invitee", {})
            invitees.append(
                InviteeMembershipInfo(AccessLevel.from_tag(member.get("access_type")), InviteeInfo(email=invitee.get("email")))
            )

        return cls(users=users, groups=groups, invitees=invitees, cursor=data.get("cursor"))


def _async_job_id(result: Optional[Dict[str, Any]]) -> Optional[str]:
    if result and result.get(".tag") == "async_job_id":
        return result["async_job_id"]
    return None


# Members


def add_folder_member(
    client: DropboxClient,
    shared_folder_id: str,
    members: Sequence[Union[str, MemberSelector]],
    options: Optional[AddFolderMemberOptions] = None,
) -> None:
    """
    Invite members to a shared folder.

    Args:
        members: Emails, ``dbid:`` account ids or MemberSelector instances
    """
    options = options or AddFolderMemberOptions()
    arg: Dict[str, Any] = {
        "shared_folder_id": shared_folder_id,
        "members": [
            {"member": MemberSelector.parse(member).to_arg(), "access_level": options.access_level.value}
            for member in members
        ],
        "quiet": options.quiet,
    }
    if options.custom_message:
        arg["custom_message"] = options.custom_message
    client.api("sharing/add_folder_member", arg)


def remove_folder_member(
    client: DropboxClient, shared_folder_id: str, member: Union[str, MemberSelector], leave_a_copy: bool
) -> Optional[str]:
    """Remove a member from a shared folder; returns the async job id."""
    arg = {
        "shared_folder_id": shared_folder_id,
        "member": MemberSelector.parse(member).to_arg(),
        "leave_a_copy": leave_a_copy,
    }
    return _async_job_id(client.api("sharing/remove_folder_member", arg))


def update_folder_member(
    client: DropboxClient, shared_folder_id: str, member: Union[str, MemberSelector], access_level: AccessLevel
) -> None:
    arg = {
        "shared_folder_id": shared_folder_id,
        "member": MemberSelector.parse(member).to_arg(),
        "access_level": access_level.value,
    }
    client.api("sharing/update_folder_member", arg)


def list_folder_members(client: DropboxClient, shared_folder_id: str) -> SharedFolderMembers:
    result = client.api("sharing/list_folder_members", {"shared_folder_id": shared_folder_id})
    return SharedFolderMembers.from_dict(result)


def list_folder_members_continue(client: DropboxClient, cursor: str) -> SharedFolderMembers:
    return SharedFolderMembers.from_dict(client.api("sharing/list_folder_members/continue", {"cursor": cursor}))


def relinquish_folder_membership(client: DropboxClient, shared_folder_id: str, leave_a_copy: bool = False) -> Optional[str]:
    """Leave a shared folder; returns an async job id, or None if Dropbox finished immediately."""
    arg = {"shared_folder_id": shared_folder_id, "leave_a_copy": leave_a_copy}
    return _async_job_id(client.api("sharing/relinquish_folder_membership", arg))


# Jobs


def check_job_status(client: DropboxClient, async_job_id: str) -> JobStatus:
    return JobStatus.from_dict(client.api("sharing/check_job_status", {"async_job_id": async_job_id}))


def check_share_job_status(client: DropboxClient, async_job_id: str) -> ShareFolderJobStatus:
    result = client.api("sharing/check_share_job_status", {"async_job_id": async_job_id})
    return ShareFolderJobStatus.from_dict(result)


# Shared links


def create_shared_link(client: DropboxClient, path: str, options: Optional[CreateSharedLinkOptions] = None) -> SharedLinkMetadata:
    """Create a shared link for a file or folder."""
    arg: Dict[str, Any] = {"path": normalize_path(path)}
    settings = (options or CreateSharedLinkOptions()).to_arg()
    if settings:
        arg["settings"] = settings
    return SharedLinkMetadata.from_dict(client.api("sharing/create_shared_link_with_settings", arg))


def get_shared_links(client: DropboxClient, path: Optional[str] = None) -> List[SharedLinkMetadata]:
    """
    List shared links, following pagination.

    Args:
        path: Only return links for this path. All of the user's links when omitted.
    """
    arg: Dict[str, Any] = {}
    if path is not None:
        arg["path"] = normalize_path(path)

    links: List[SharedLinkMetadata] = []
    while True:
        result = client.api("sharing/list_shared_links", dict(arg))
        links.extend(SharedLinkMetadata.from_dict(link) for link in result.get("links", []))
        if not result.get("has_more"):
            return links
        arg["cursor"] = result["cursor"]


def revoke_shared_link(client: DropboxClient, url: str) -> None:
    client.api("sharing/revoke_shared_link", {"url": url})


# Shared folders


def get_folder_metadata(client: DropboxClient, shared_folder_id: str) -> SharedFolderMetadata:
    result = client.api("sharing/get_folder_metadata", {"shared_folder_id": shared_folder_id})
    return SharedFolderMetadata.from_dict(result)


def list_folders(client: DropboxClient) -> SharedFolderList:
    """List the shared folders the user has access to."""
    return SharedFolderList.from_dict(client.api("sharing/list_folders", {}))


def list_folders_continue(client: DropboxClient, cursor: str) -> SharedFolderList:
    return SharedFolderList.from_dict(client.api("sharing/list_folders/continue", {"cursor": cursor}))


def mount_folder(client: DropboxClient, shared_folder_id: str) -> SharedFolderMetadata:
    result = client.api("sharing/mount_folder", {"shared_folder_id": shared_folder_id})
    return SharedFolderMetadata.from_dict(result)


def unmount_folder(client: DropboxClient, shared_folder_id: str) -> None:
    client.api("sharing/unmount_folder", {"shared_folder_id": shared_folder_id})


def share_folder(client: DropboxClient, path: str, options: Optional[ShareFolderOptions] = None) -> ShareFolderLaunch:
    """
    Share a folder.

    Large folders are shared asynchronously; poll check_share_job_status()
    with ``ShareFolderLaunch.async_job_id`` in that case.
    """
    options = options or ShareFolderOptions()
    arg = {
        "path": normalize_path(path),
        "member_policy": options.member_policy.value,
        "acl_update_policy": options.acl_update_policy.value,
        "shared_link_policy": options.shared_link_policy.value,
        "force_async": options.force_async,
    }
    return ShareFolderLaunch.from_dict(client.api("sharing/share_folder", arg))


def unshare_folder(client: DropboxClient, shared_folder_id: str, leave_a_copy: bool) -> Optional[str]:
    arg = {"shared_folder_id": shared_folder_id, "leave_a_copy": leave_a_copy}
    return _async_job_id(client.api("sharing/unshare_folder", arg))


def transfer_folder(client: DropboxClient, shared_folder_id: str, to_dropbox_id: str) -> None:
    """Transfer ownership of a shared folder to another member."""
    client.api("sharing/transfer_folder", {"shared_folder_id": shared_folder_id, "to_dropbox_id": to_dropbox_id})


def update_folder_policy(
    client: DropboxClient, shared_folder_id: str, options: Optional[UpdateFolderPolicyOptions] = None
) -> SharedFolderMetadata:
    options = options or UpdateFolderPolicyOptions()
    arg: Dict[str, Any] = {"shared_folder_id": shared_folder_id}
    if options.member_policy is not None:
        arg["member_policy"] = options.member_policy.value
    if options.acl_update_policy is not None:
        arg["acl_update_policy"] = options.acl_update_policy.value
    if options.shared_link_policy is not None:
        arg["shared_link_policy"] = options.shared_link_policy.value
    return SharedFolderMetadata.from_dict(client.api("sharing/update_folder_policy", arg))
