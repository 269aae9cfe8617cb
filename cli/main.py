"""CLI entry point."""

import argparse
import os
import sys
from typing import List, Optional

from common.logging_config import setup_logging
from cli.config import Config
from cli.vault_client import VaultClient
from engine.codec import generate_key_hex


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='vault',
        description='Encrypted file vault client',
    )
    parser.add_argument('--server', help='Server base URL (overrides VAULT_SERVER_URL and config file)')
    parser.add_argument('--config', help='Path to config JSON file')
    parser.add_argument('--debug', action='store_true', help='Enable debug logging')

    subparsers = parser.add_subparsers(dest='command', required=True)

    subparsers.add_parser('keygen', help='Print a new random MASTER_KEY (64 hex characters)')

    upload = subparsers.add_parser('upload', help='Upload and encrypt a file')
    upload.add_argument('path', help='Local file to upload')

    subparsers.add_parser('list', help='List stored files, newest first')

    download = subparsers.add_parser('download', help='Download and decrypt a file')
    download.add_argument('file_id', help='Id returned by upload')
    download.add_argument('-o', '--output', help='Destination file or directory')

    delete = subparsers.add_parser('delete', help='Delete a stored file')
    delete.add_argument('file_id', help='Id returned by upload')

    return parser


def run_command(args: argparse.Namespace, client: VaultClient) -> str:
    """
    Dispatch a parsed command to the client.

    Args:
        args: Parsed arguments
        client: Vault client

    Returns:
        Output text for the user
    """
    if args.command == 'upload':
        return client.upload(args.path)
    if args.command == 'list':
        return client.list_files()
    if args.command == 'download':
        return client.download(args.file_id, args.output)
    if args.command == 'delete':
        return client.delete(args.file_id)
    raise ValueError(f"Unknown command: {args.command}")


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point for CLI."""
    args = build_parser().parse_args(argv)

    log_level = 'DEBUG' if args.debug else os.getenv('LOG_LEVEL', 'WARNING')
    logger = setup_logging('cli', log_level=log_level)

    if args.command == 'keygen':
        print(generate_key_hex())
        return 0

    config = Config(args.config)
    if args.server:
        config.set_server_url(args.server)

    client = VaultClient(config)
    try:
        output = run_command(args, client)
    except Exception as e:
        logger.error(f"CLI error: {e}", exc_info=True)
        raise
    finally:
        client.close()

    print(output)
    return 1 if output.startswith('Error') else 0


if __name__ == "__main__":
    sys.exit(main())
