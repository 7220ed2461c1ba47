"""
Exception hierarchy for Dropbox API calls.

Every failure raised by the library derives from DropboxError. HTTP level
failures map to HttpError subclasses; route level failures (HTTP 409) map to
ApiError, which carries the decoded error union returned by Dropbox.
"""

from typing import Any, Dict, Optional

# Route -> name of the error union Dropbox documents for that route
ROUTE_ERRORS: Dict[str, str] = {
    "files/copy_v2": "RelocationError",
    "files/create_folder_v2": "CreateFolderError",
    "files/delete_v2": "DeleteError",
    "files/download": "DownloadError",
    "files/get_metadata": "GetMetadataError",
    "files/get_preview": "PreviewError",
    "files/get_thumbnail_v2": "ThumbnailError",
    "files/list_folder": "ListFolderError",
    "files/list_folder/continue": "ListFolderContinueError",
    "files/list_folder/get_latest_cursor": "ListFolderError",
    "files/list_folder/longpoll": "ListFolderLongpollError",
    "files/list_revisions": "ListRevisionsError",
    "files/move_v2": "RelocationError",
    "files/permanently_delete": "DeleteError",
    "files/restore": "RestoreError",
    "files/search_v2": "SearchError",
    "files/search/continue_v2": "SearchError",
    "files/upload": "UploadError",
    "files/upload_session/start": "UploadError",
    "files/upload_session/append_v2": "UploadSessionLookupError",
    "files/upload_session/finish": "UploadSessionFinishError",
    "sharing/add_folder_member": "AddFolderMemberError",
    "sharing/check_job_status": "PollError",
    "sharing/check_share_job_status": "PollError",
    "sharing/create_shared_link_with_settings": "CreateSharedLinkError",
    "sharing/get_folder_metadata": "SharedFolderAccessError",
    "sharing/list_shared_links": "GetSharedLinksError",
    "sharing/list_folder_members": "SharedFolderAccessError",
    "sharing/list_folder_members/continue": "ListFolderMembersContinueError",
    "sharing/list_folders/continue": "ListFoldersContinueError",
    "sharing/mount_folder": "MountFolderError",
    "sharing/relinquish_folder_membership": "RelinquishFolderMembershipError",
    "sharing/remove_folder_member": "RemoveFolderMemberError",
    "sharing/revoke_shared_link": "RevokeSharedLinkError",
    "sharing/share_folder": "ShareFolderError",
    "sharing/transfer_folder": "TransferFolderError",
    "sharing/unmount_folder": "UnmountFolderError",
    "sharing/unshare_folder": "UnshareFolderError",
    "sharing/update_folder_member": "UpdateFolderMemberError",
    "sharing/update_folder_policy": "UpdateFolderPolicyError",
    "users/get_account": "GetAccountError",
    "users/get_account_batch": "GetAccountBatchError",
}


def error_name_for_route(route: str) -> str:
    """Return the Dropbox error type name for a route (``ApiError`` if unknown)."""
    return ROUTE_ERRORS.get(route, "ApiError")


class DropboxError(Exception):
    """Base class for all errors raised by dbox."""

    def __init__(self, message: str, request_id: Optional[str] = None):
        super().__init__(message)
        self.request_id = request_id


class ClientError(DropboxError):
    """Transport failure or a response that could not be decoded."""


class TokenError(DropboxError):
    """The access token is malformed."""


class HttpError(DropboxError):
    """Dropbox answered with an unexpected HTTP status."""

    def __init__(self, status_code: int, body: str = "", request_id: Optional[str] = None):
        super().__init__(f"HTTP {status_code}: {body[:500]}", request_id)
        self.status_code = status_code
        self.body = body


class BadInputError(HttpError):
    """HTTP 400: the request was malformed."""

    def __init__(self, body: str = "", request_id: Optional[str] = None):
        super().__init__(400, body, request_id)


class AuthError(HttpError):
    """HTTP 401: the token is invalid, expired or revoked."""

    def __init__(self, error: Optional[Dict[str, Any]] = None, body: str = "", request_id: Optional[str] = None):
        super().__init__(401, body, request_id)
        self.error = error or {}

    @property
    def tag(self) -> Optional[str]:
        return self.error.get(".tag")


class AccessError(HttpError):
    """HTTP 403: the app is not allowed to call this route."""

    def __init__(self, body: str = "", request_id: Optional[str] = None):
        super().__init__(403, body, request_id)


class RateLimitError(HttpError):
    """HTTP 429: too many requests."""

    def __init__(self, retry_after: Optional[float] = None, body: str = "", request_id: Optional[str] = None):
        super().__init__(429, body, request_id)
        self.retry_after = retry_after


class InternalServerError(HttpError):
    """HTTP 5xx from Dropbox."""


class ApiError(DropboxError):
    """
    Route specific error (HTTP 409).

    Attributes:
        route: API route that failed (e.g. ``files/list_folder``)
        error: Decoded error union, e.g. ``{".tag": "path", "path": {".tag": "not_found"}}``
        error_summary: Human readable summary, e.g. ``path/not_found/..``
        user_message: Localized message meant for end users, if any
    """

    def __init__(
        self,
        route: str,
        error: Optional[Dict[str, Any]] = None,
        error_summary: str = "",
        user_message: Optional[str] = None,
        request_id: Optional[str] = None,
        error_name: Optional[str] = None,
    ):
        self.route = route
        self.error = error or {}
        self.error_summary = error_summary
        self.user_message = user_message
        self.error_name = error_name or error_name_for_route(route)
        super().__init__(f"{self.error_name} on {route}: {error_summary}", request_id)

    @property
    def tag(self) -> Optional[str]:
        return self.error.get(".tag")

    def is_path_conflict(self) -> bool:
        """True when the error reports a path conflict (e.g. folder already exists)."""
        return "/conflict" in self.error_summary or self.error_summary.startswith("conflict")

    def is_not_found(self) -> bool:
        return "not_found" in self.error_summary
