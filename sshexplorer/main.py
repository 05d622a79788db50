#!/usr/bin/env python3
"""
sshexplorer - browse local folders and remote hosts over SSH/SFTP
Command line entry point
"""

import argparse
import asyncio
import getpass
import logging
import os
import sys
import time
from logging.handlers import RotatingFileHandler
from typing import Optional, Sequence

from . import __version__
from . import commands as cmd
from .config import Config
from .credentials import CredentialStore
from .errors import ExplorerError
from .filesystem import REMOTE
from .filesystem.file_types import human_size
from .profiles import AUTH_KEY, AUTH_METHODS, AUTH_PASSWORD, DEFAULT_PORT, Credentials, ProfileCatalogue
from .platform_utils import get_data_dir
from .registry import ConnectionRegistry
from .workspace import Workspace

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False, log_dir: Optional[str] = None) -> logging.Logger:
    """Set up logging configuration"""
    # Create log directory if it doesn't exist
    log_dir = log_dir or get_data_dir()
    os.makedirs(log_dir, exist_ok=True)

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    # Clear any existing handlers
    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    # File handler with rotation
    file_handler = RotatingFileHandler(
        os.path.join(log_dir, 'sshexplorer.log'),
        maxBytes=10*1024*1024,  # 10MB
        backupCount=5,
        encoding='utf-8'
    )
    file_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
    file_handler.setFormatter(formatter)

    # Console output is reserved for command results unless verbose
    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.DEBUG if verbose else logging.WARNING)
    console_handler.setFormatter(formatter)

    root_logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    root_logger.addHandler(file_handler)
    root_logger.addHandler(console_handler)

    logging.getLogger('asyncio').setLevel(logging.DEBUG if verbose else logging.WARNING)
    logging.getLogger('paramiko').setLevel(logging.DEBUG if verbose else logging.WARNING)
    logging.getLogger('sshexplorer').setLevel(logging.DEBUG if verbose else logging.INFO)
    return root_logger


def build_workspace(config: Config) -> Workspace:
    registry = ConnectionRegistry(
        catalogue=ProfileCatalogue(os.path.join(config.config_dir, ProfileCatalogue.FILENAME)),
        credential_store=CredentialStore(),
        options=config.get_session_options(),
    )
    return Workspace(registry)


def _add_remote_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--remote", metavar="ID", help="Run against a saved connection instead of the local machine")
    parser.add_argument("--ask-pass", action="store_true", help="Prompt for the password or key passphrase")


def _add_auth_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--port", "-p", type=int, default=DEFAULT_PORT)
    parser.add_argument("--user", "-u", help="Remote user name (defaults to the local user)")
    parser.add_argument("--auth", choices=AUTH_METHODS, default=AUTH_PASSWORD, help="Authentication method")
    parser.add_argument("--key", metavar="PATH", help="Private key file for key authentication")
    parser.add_argument("--passphrase", action="store_true", help="Prompt for the key passphrase")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="sshexplorer", description="Browse local and remote files over SSH/SFTP")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose debug logging")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = parser.add_subparsers(dest="command", required=True)

    connections = sub.add_parser("connections", help="Manage saved connections")
    conn_sub = connections.add_subparsers(dest="action", required=True)
    conn_sub.add_parser("list", help="List saved connections")

    add = conn_sub.add_parser("add", help="Save a new connection")
    add.add_argument("name")
    add.add_argument("host")
    _add_auth_arguments(add)
    add.add_argument("--save", action="store_true", help="Store the secret in the system keyring")

    remove = conn_sub.add_parser("remove", help="Delete a saved connection and its stored secret")
    remove.add_argument("id")

    rename = conn_sub.add_parser("rename", help="Change the display name of a connection")
    rename.add_argument("id")
    rename.add_argument("name")

    test = conn_sub.add_parser("test", help="Try a connection without saving anything")
    test.add_argument("host")
    _add_auth_arguments(test)

    connect = sub.add_parser("connect", help="Open and verify a saved connection")
    connect.add_argument("id")
    connect.add_argument("--ask-pass", action="store_true", help="Prompt for the password or key passphrase")

    home = sub.add_parser("home", help="Print the home directory")
    _add_remote_arguments(home)

    ls = sub.add_parser("ls", help="List a directory")
    ls.add_argument("path", nargs="?")
    ls.add_argument("--all", "-a", action="store_true", help="Include hidden entries")
    _add_remote_arguments(ls)

    cat = sub.add_parser("cat", help="Print a file")
    cat.add_argument("path")
    _add_remote_arguments(cat)

    mkdir = sub.add_parser("mkdir", help="Create a folder")
    mkdir.add_argument("path")
    _add_remote_arguments(mkdir)

    rm = sub.add_parser("rm", help="Delete a file or, with -r, a folder")
    rm.add_argument("path")
    rm.add_argument("-r", "--recursive", action="store_true")
    _add_remote_arguments(rm)

    mv = sub.add_parser("mv", help="Rename an entry within its folder")
    mv.add_argument("path")
    mv.add_argument("new_name")
    _add_remote_arguments(mv)
    return parser


def _prompt_credentials(auth_method: str, key_path: Optional[str] = None, passphrase: bool = False) -> Credentials:
    if auth_method == AUTH_KEY:
        secret = getpass.getpass("Key passphrase: ") if passphrase else None
        return Credentials(private_key_path=key_path, passphrase=secret or None)
    return Credentials(password=getpass.getpass("Password: "))


def _fail(result) -> int:
    print(f"Error: {result.error}", file=sys.stderr)
    return 1


async def _activate_remote(workspace: Workspace, args) -> Optional[cmd.CommandResult]:
    """Bind the workspace to ``--remote`` when given; return a failed result on error."""
    connection_id = getattr(args, "remote", None)
    if not connection_id:
        return None
    if getattr(args, "ask_pass", False):
        profile = workspace.registry.get_profile(connection_id)
        credentials = _prompt_credentials(profile.auth_method, profile.private_key_path, passphrase=True)
        result = await workspace.execute(cmd.Connect(connection_id, credentials))
        if not result.ok:
            return result
    result = await workspace.execute(cmd.SwitchBackend(REMOTE, connection_id))
    return None if result.ok else result


def _print_listing(listing) -> None:
    for entry in listing.entries:
        modified = time.strftime("%Y-%m-%d %H:%M", time.localtime(entry.modified)) if entry.modified else "-"
        size = "-" if entry.is_dir else human_size(entry.size)
        name = entry.name + ("/" if entry.is_dir else "")
        print(f"{entry.permissions or '':10}  {size:>9}  {modified:16}  {name}")


async def _connections(workspace: Workspace, args, config: Optional[Config] = None) -> int:
    if args.action == "list":
        result = await workspace.execute(cmd.ListConnections())
        if not result.ok:
            return _fail(result)
        for profile in result.value:
            session = workspace.registry.get_session(profile.id)
            status = session.status.value if session else "disconnected"
            print(f"{profile.id}  {profile}  [{profile.auth_method}, {status}]")
        return 0

    if args.action in ("add", "test"):
        username = args.user or getpass.getuser()
        save = args.action == "add" and args.save
        if save and config is not None and not config.get_setting("security.store_passwords", True):
            print("Secret storage is disabled in settings; not saving credentials", file=sys.stderr)
            save = False
        if args.action == "add" and args.auth == AUTH_PASSWORD and not save:
            # Nothing to store; the password is asked for on connect
            credentials = Credentials()
        else:
            credentials = _prompt_credentials(args.auth, args.key, args.passphrase)
        if args.action == "add":
            result = await workspace.execute(cmd.CreateConnection(
                name=args.name,
                host=args.host,
                username=username,
                port=args.port,
                auth_method=args.auth,
                credentials=credentials,
                save_credentials=save,
            ))
            if not result.ok:
                return _fail(result)
            print(result.value)
            return 0

        result = await workspace.execute(cmd.TestConnection(
            host=args.host,
            username=username,
            port=args.port,
            auth_method=args.auth,
            credentials=credentials,
        ))
        if not result.ok:
            return _fail(result)
        if not result.value.success:
            print(f"Connection failed: {result.value.error}", file=sys.stderr)
            return 1
        print("Connection successful")
        return 0

    if args.action == "remove":
        result = await workspace.execute(cmd.DeleteConnection(args.id))
    else:
        result = await workspace.execute(cmd.RenameConnection(args.id, args.name))
    return 0 if result.ok else _fail(result)


async def run_command(workspace: Workspace, args, config: Optional[Config] = None) -> int:
    """Execute the parsed *args* against *workspace* and return an exit status."""
    if args.command == "connections":
        return await _connections(workspace, args, config)

    if args.command == "connect":
        credentials = None
        if args.ask_pass:
            profile = workspace.registry.get_profile(args.id)
            credentials = _prompt_credentials(profile.auth_method, profile.private_key_path, passphrase=True)
        result = await workspace.execute(cmd.Connect(args.id, credentials))
        if not result.ok:
            return _fail(result)
        print(f"{args.id}: {result.value}")
        return 0

    failed = await _activate_remote(workspace, args)
    if failed is not None:
        return _fail(failed)
    backend = workspace.backend

    if args.command == "home":
        result = await workspace.execute(cmd.GetHomeDirectory())
        if result.ok:
            print(result.value)
    elif args.command == "ls":
        include_hidden = args.all or bool(
            config is not None and config.get_setting("file_manager.show_hidden", False)
        )
        path = args.path
        if not path:
            home = await workspace.execute(cmd.GetHomeDirectory())
            if not home.ok:
                return _fail(home)
            path = home.value
        result = await workspace.execute(cmd.OpenDirectory(path, include_hidden=include_hidden))
        if result.ok:
            _print_listing(result.value)
    elif args.command == "cat":
        result = await workspace.execute(cmd.ReadFile(args.path))
        if result.ok:
            sys.stdout.buffer.write(result.value)
            sys.stdout.flush()
    elif args.command == "mkdir":
        result = await workspace.execute(
            cmd.CreateFolder(backend.dirname(args.path) or ".", backend.basename(args.path))
        )
    elif args.command == "rm":
        result = await workspace.execute(cmd.Delete(args.path, is_directory=args.recursive))
    elif args.command == "mv":
        result = await workspace.execute(cmd.Rename(args.path, args.new_name))
        if result.ok:
            print(result.value)
    else:
        raise ValueError(f"Unknown command {args.command}")

    return 0 if result.ok else _fail(result)


async def _run(args, config: Config) -> int:
    workspace = build_workspace(config)
    try:
        return await run_command(workspace, args, config)
    except ExplorerError as exc:
        print(f"Error: {exc.message}", file=sys.stderr)
        return 1
    finally:
        await workspace.registry.disconnect_all()


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point"""
    args = build_parser().parse_args(argv)
    config = Config()
    verbose = args.verbose or bool(config.get_setting('ssh.debug_enabled', False))
    setup_logging(verbose)
    logger.debug("sshexplorer %s starting: %s", __version__, args.command)
    try:
        return asyncio.run(_run(args, config))
    except KeyboardInterrupt:
        return 130


if __name__ == '__main__':
    sys.exit(main())
