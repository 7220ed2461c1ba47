#!/usr/bin/env python3
"""
Command line interface for dbox.

Usage:
    dbox authorize
    dbox account
    dbox ls /Photos --recursive
    dbox get /Photos/cat.jpg ./cat.jpg
    dbox put ./report.pdf /Documents/report.pdf --overwrite

Credentials are read from config/config.yaml (see config/config.example.yaml)
or from the DROPBOX_* environment variables.
"""

import argparse
import json
import os
import sys
from typing import Callable, Dict, List, Optional

from dbox import files, sharing, users
from dbox.auth import ClientFactory, OAuthManager, TokenStorage
from dbox.client import DropboxClient
from dbox.config import DEFAULT_CONFIG_PATH, load_config, save_refresh_token
from dbox.exceptions import DropboxError
from dbox.logging_utils import get_logger, setup_logging
from dbox.metrics import RequestMetrics
from dbox.structs import FileMetadata, FolderMetadata


def _format_size(size: int) -> str:
    value = float(size)
    for unit in ("B", "KB", "MB", "GB"):
        if value < 1024 or unit == "GB":
            return f"{value:.0f} {unit}" if unit == "B" else f"{value:.1f} {unit}"
        value /= 1024
    return f"{size} B"


def cmd_account(client: DropboxClient, args: argparse.Namespace) -> None:
    account = users.get_current_account(client)
    usage = users.get_space_usage(client)

    print(f"Name:       {account.name.display_name if account.name else ''}")
    print(f"Email:      {account.email}")
    print(f"Account ID: {account.account_id}")
    print(f"Type:       {account.account_type}")
    print(f"Used:       {_format_size(usage.used)} of {_format_size(usage.allocation)}")


def cmd_ls(client: DropboxClient, args: argparse.Namespace) -> None:
    options = files.ListFolderOptions(recursive=args.recursive)
    result = files.list_folder(client, args.path, options)
    while True:
        for entry in result.entries:
            if args.json:
                print(json.dumps(entry.to_dict()))
            elif isinstance(entry, FolderMetadata):
                print(f"{'<dir>':>10}  {entry.path_display}")
            elif isinstance(entry, FileMetadata):
                print(f"{_format_size(entry.size):>10}  {entry.path_display}")
        if not result.has_more:
            break
        result = files.list_folder_continue(client, result.cursor)


def cmd_get(client: DropboxClient, args: argparse.Namespace) -> None:
    local_path = args.local or os.path.basename(args.remote.rstrip("/"))
    metadata, _ = files.download_to_file(client, local_path, args.remote)
    print(f"Downloaded {metadata.path_display} -> {local_path} ({_format_size(metadata.size)})")


def cmd_put(client: DropboxClient, args: argparse.Namespace) -> None:
    mode = files.WriteMode.OVERWRITE if args.overwrite else files.WriteMode.ADD
    options = files.UploadOptions(mode=mode, autorename=args.autorename)
    with open(args.local, "rb") as f:
        metadata = files.upload_large(client, f, args.remote, options)
    print(f"Uploaded {args.local} -> {metadata.path_display} (rev {metadata.rev})")


def cmd_mkdir(client: DropboxClient, args: argparse.Namespace) -> None:
    metadata = files.create_folder(client, args.path)
    print(f"Created {metadata.path_display}")


def cmd_rm(client: DropboxClient, args: argparse.Namespace) -> None:
    metadata = files.delete(client, args.path)
    print(f"Deleted {metadata.path_display}")


def cmd_cp(client: DropboxClient, args: argparse.Namespace) -> None:
    metadata = files.copy_(client, args.source, args.dest, autorename=args.autorename)
    print(f"Copied {args.source} -> {metadata.path_display}")


def cmd_mv(client: DropboxClient, args: argparse.Namespace) -> None:
    metadata = files.move_(client, args.source, args.dest, autorename=args.autorename)
    print(f"Moved {args.source} -> {metadata.path_display}")


def cmd_search(client: DropboxClient, args: argparse.Namespace) -> None:
    mode = files.SearchMode.FILENAME_AND_CONTENT if args.content else files.SearchMode.FILENAME
    result = files.search(client, args.path, args.query, files.SearchOptions(max_results=args.max_results, mode=mode))
    for match in result.matches:
        print(match.metadata.path_display)
    if not result.matches:
        print("No matches")


def cmd_share_link(client: DropboxClient, args: argparse.Namespace) -> None:
    link = sharing.create_shared_link(client, args.path)
    print(link.url)


COMMANDS: Dict[str, Callable[[DropboxClient, argparse.Namespace], None]] = {
    "account": cmd_account,
    "ls": cmd_ls,
    "get": cmd_get,
    "put": cmd_put,
    "mkdir": cmd_mkdir,
    "rm": cmd_rm,
    "cp": cmd_cp,
    "mv": cmd_mv,
    "search": cmd_search,
    "share-link": cmd_share_link,
}


def authorize(config_path: str, force_config_storage: bool = False) -> int:
    """
    Run the OAuth 2.0 authorization flow and store the refresh token.

    Returns:
        Process exit status
    """
    config = load_config(config_path if os.path.exists(config_path) else None)
    dropbox_config = config["dropbox"]
    app_key = dropbox_config.get("app_key")

    if not app_key:
        print("\nError: app_key not found in configuration.")
        print("\nAdd your Dropbox app key to config/config.yaml or set DROPBOX_APP_KEY:")
        print('\ndropbox:\n  app_key: "YOUR_APP_KEY_HERE"')
        return 1

    oauth_manager = OAuthManager(app_key, dropbox_config.get("app_secret"))
    authorize_url = oauth_manager.start_authorization_flow()

    print("=" * 70)
    print("STEP 1: Authorize the application")
    print("=" * 70)
    print(f"\nPlease visit this URL in your browser:\n\n{authorize_url}\n")
    print("Click 'Allow' and copy the authorization code shown on the page.")

    auth_code = input("\nEnter the authorization code: ").strip()
    if not auth_code:
        print("\nError: No authorization code provided.")
        return 1

    tokens = oauth_manager.complete_authorization_flow(auth_code)

    token_storage = TokenStorage()
    if not force_config_storage and token_storage.keyring_available and token_storage.save_tokens(tokens):
        print("\n✓ Tokens saved to system keyring")
    else:
        save_refresh_token(config_path, tokens["refresh_token"])
        print(f"\n✓ Refresh token saved to: {config_path}")
        print("WARNING: Token is stored in plaintext in the config file.")

    print(f"✓ Account ID: {tokens['account_id']}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="dbox", description="Dropbox command line client")
    parser.add_argument(
        "--config",
        default=DEFAULT_CONFIG_PATH,
        help=f"Path to configuration file (default: {DEFAULT_CONFIG_PATH})",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose logging")
    parser.add_argument("--log-file", help="Also write logs to this file")
    parser.add_argument("--metrics-file", help="Save API call metrics to this JSON file")

    subparsers = parser.add_subparsers(dest="command", required=True)

    p = subparsers.add_parser("authorize", help="Authorize dbox with OAuth 2.0")
    p.add_argument(
        "--force-config-storage",
        action="store_true",
        help="Store the refresh token in the config file instead of the keyring",
    )

    subparsers.add_parser("account", help="Show account details and space usage")

    p = subparsers.add_parser("ls", help="List a folder")
    p.add_argument("path", nargs="?", default="")
    p.add_argument("-r", "--recursive", action="store_true")
    p.add_argument("--json", action="store_true", help="Print one JSON object per entry")

    p = subparsers.add_parser("get", help="Download a file")
    p.add_argument("remote")
    p.add_argument("local", nargs="?")

    p = subparsers.add_parser("put", help="Upload a file")
    p.add_argument("local")
    p.add_argument("remote")
    p.add_argument("--overwrite", action="store_true", help="Replace an existing file")
    p.add_argument("--autorename", action="store_true", help="Rename on conflict")

    p = subparsers.add_parser("mkdir", help="Create a folder")
    p.add_argument("path")

    p = subparsers.add_parser("rm", help="Delete a file or folder")
    p.add_argument("path")

    for name, help_text in (("cp", "Copy a file or folder"), ("mv", "Move a file or folder")):
        p = subparsers.add_parser(name, help=help_text)
        p.add_argument("source")
        p.add_argument("dest")
        p.add_argument("--autorename", action="store_true", help="Rename on conflict")

    p = subparsers.add_parser("search", help="Search for files")
    p.add_argument("query")
    p.add_argument("--path", default="", help="Folder to search in")
    p.add_argument("--content", action="store_true", help="Also match file contents")
    p.add_argument("--max-results", type=int, default=100)

    p = subparsers.add_parser("share-link", help="Create a shared link")
    p.add_argument("path")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point for the ``dbox`` console script."""
    args = build_parser().parse_args(argv)

    setup_logging(args.verbose, args.log_file)
    logger = get_logger(__name__)

    try:
        if args.command == "authorize":
            return authorize(args.config, args.force_config_storage)

        config_path = args.config if args.config != DEFAULT_CONFIG_PATH else None
        config = load_config(config_path)
        metrics = RequestMetrics()
        metrics.start_collection()

        try:
            with ClientFactory(config, metrics).create_client() as client:
                COMMANDS[args.command](client, args)
        finally:
            metrics.end_collection()
            if args.metrics_file:
                metrics.save_to_file(args.metrics_file)
            elif args.verbose:
                metrics.log_summary()
        return 0

    except KeyboardInterrupt:
        print("\nCancelled by user.")
        return 1
    except (ValueError, FileNotFoundError) as e:
        print(f"Error: {e}")
        return 1
    except DropboxError as e:
        logger.debug("Command failed", exc_info=True)
        print(f"Error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
