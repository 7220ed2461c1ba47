"""
dbox: client library for the Dropbox HTTP API v2.

Example:

    from dbox import DropboxClient, files

    client = DropboxClient(ACCESS_TOKEN)
    folder_list = files.list_folder(client, "/path/to/folder")
"""

from dbox import files, sharing, users
from dbox.client import DropboxClient, Endpoint, Response
from dbox.exceptions import (
    AccessError,
    ApiError,
    AuthError,
    BadInputError,
    ClientError,
    DropboxError,
    HttpError,
    InternalServerError,
    RateLimitError,
    TokenError,
)

__version__ = "0.2.0"

__all__ = [
    "AccessError",
    "ApiError",
    "AuthError",
    "BadInputError",
    "ClientError",
    "DropboxClient",
    "DropboxError",
    "Endpoint",
    "HttpError",
    "InternalServerError",
    "RateLimitError",
    "Response",
    "TokenError",
    "files",
    "sharing",
    "users",
]
