"""Routes in the Dropbox ``users`` namespace."""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from dbox.client import DropboxClient
from dbox.exceptions import ApiError

# users/get_account_batch accepts at most this many ids
MAX_ACCOUNT_BATCH = 300


@dataclass
class Name:
    given_name: str = ""
    surname: str = ""
    familiar_name: str = ""
    display_name: str = ""
    abbreviated_name: str = ""

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "Name":
        data = data or {}
        return cls(
            given_name=data.get("given_name", ""),
            surname=data.get("surname", ""),
            familiar_name=data.get("familiar_name", ""),
            display_name=data.get("display_name", ""),
            abbreviated_name=data.get("abbreviated_name", ""),
        )


@dataclass
class BasicAccount:
    account_id: Optional[str] = None
    name: Optional[Name] = None
    email: Optional[str] = None
    email_verified: bool = False
    disabled: bool = False
    is_teammate: Optional[bool] = None
    team_member_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BasicAccount":
        return cls(
            account_id=data.get("account_id"),
            name=Name.from_dict(data.get("name")),
            email=data.get("email"),
            email_verified=data.get("email_verified", False),
            disabled=data.get("disabled", False),
            is_teammate=data.get("is_teammate"),
            team_member_id=data.get("team_member_id"),
        )


@dataclass
class FullAccount:
    account_id: str = ""
    name: Optional[Name] = None
    email: str = ""
    locale: str = ""
    referral_link: str = ""
    is_paired: bool = False
    account_type: str = ""
    country: Optional[str] = None
    team: Optional[str] = None
    root_namespace_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FullAccount":
        team = data.get("team") or {}
        return cls(
            account_id=data.get("account_id", ""),
            name=Name.from_dict(data.get("name")),
            email=data.get("email", ""),
            locale=data.get("locale", ""),
            referral_link=data.get("referral_link", ""),
            is_paired=data.get("is_paired", False),
            account_type=(data.get("account_type") or {}).get(".tag", ""),
            country=data.get("country"),
            team=team.get("name"),
            root_namespace_id=(data.get("root_info") or {}).get("root_namespace_id"),
        )


@dataclass
class SpaceUsage:
    """Bytes used and bytes allocated (individual quota, or the team's)."""

    used: int = 0
    allocation: int = 0
    allocation_type: str = "individual"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SpaceUsage":
        allocation = data.get("allocation") or {}
        return cls(
            used=data.get("used", 0),
            allocation=allocation.get("allocated", 0),
            allocation_type=allocation.get(".tag", "other"),
        )


def get_account(client: DropboxClient, account_id: str) -> BasicAccount:
    return BasicAccount.from_dict(client.api("users/get_account", {"account_id": account_id}))


def get_account_batch(client: DropboxClient, account_ids: Sequence[str]) -> List[BasicAccount]:
    """
    Get information about several accounts at once.

    Raises:
        ApiError: More than 300 ids were given (no request is made)
    """
    if len(account_ids) > MAX_ACCOUNT_BATCH:
        raise ApiError(
            "users/get_account_batch",
            error={".tag": "too_many_accounts"},
            error_summary=f"too_many_accounts: {len(account_ids)} > {MAX_ACCOUNT_BATCH}",
        )
    if not account_ids:
        return []

    result = client.api("users/get_account_batch", {"account_ids": list(account_ids)})
    return [BasicAccount.from_dict(account) for account in result]


def get_current_account(client: DropboxClient) -> FullAccount:
    return FullAccount.from_dict(client.api("users/get_current_account"))


def get_space_usage(client: DropboxClient) -> SpaceUsage:
    return SpaceUsage.from_dict(client.api("users/get_space_usage"))
