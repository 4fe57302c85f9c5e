"""Command Line Interface for odpush."""

import argparse
import json
import os
import sys
import threading
from dataclasses import asdict

from rich.console import Console
from rich.panel import Panel

from odpush.client import OneDrivePushClient
from odpush.core.config import (
    DEFAULT_CHUNK_SIZE_MB,
    DEFAULT_MAX_RETRIES,
    DEFAULT_OBSCURE_VERSION,
    DEFAULT_RETRY_DELAY,
    ENV_OBSCURED_KEYS,
    ENV_RCLONE_CONFIG,
    ENV_REMOTES_FILE,
    MAX_PARALLELISM,
    MIN_PARALLELISM,
)
from odpush.core.errors import OdpushError, UploadCancelled
from odpush.utils.progress import (
    create_file_progress,
    display_quota_table,
    display_remotes,
    display_upload_result,
)

console = Console()


def display_header():
    """Display the application header."""
    console.print(
        Panel(
            "[bold blue]odpush[/bold blue]\n"
            "[dim]Chunked, resumable uploads to OneDrive from rclone credentials[/dim]",
            border_style="blue",
            padding=(1, 2),
        )
    )


def handle_upload_command(args, client, cancel):
    """Handle the upload command."""
    if not os.path.isfile(args.local_file_path):
        console.print(f"❌ [bold red]ERROR: The path '{args.local_file_path}' is not a file.")
        sys.exit(1)

    file_name = args.name or os.path.basename(args.local_file_path)
    file_size = os.path.getsize(args.local_file_path)
    progress = create_file_progress(file_name)

    with open(args.local_file_path, "rb") as stream, progress:
        task = progress.add_task("", total=file_size)

        def progress_callback(bytes_uploaded):
            progress.update(task, advance=bytes_uploaded)

        item = client.upload(
            args.remote,
            stream,
            file_size,
            args.remote_folder,
            file_name,
            args.chunk_size,
            parallelism=args.parallelism,
            cancel=cancel,
            progress_callback=progress_callback,
        )

    display_upload_result(item, client.stats)


def handle_quota_command(args, client, cancel):
    """Handle the quota command."""
    if args.remote:
        quotas = {args.remote: client.get_quota(args.remote, cancel=cancel)}
    else:
        quotas = client.get_all_quotas(cancel=cancel)
    display_quota_table(quotas)


def handle_token_command(args, client, cancel):
    """Handle the token command. Prints secrets: trusted operators only."""
    grant = client.get_token(args.remote, cancel=cancel)
    console.print_json(json.dumps(asdict(grant)))


def handle_remotes_command(args, client, cancel):
    display_remotes(client.config_store)


def create_argument_parser():
    """Create and configure the argument parser."""
    parser = argparse.ArgumentParser(
        description="odpush - Upload large files to OneDrive using resumable upload sessions.",
        epilog=f"""
        Credentials are read from an rclone configuration file ({ENV_RCLONE_CONFIG},
        default ~/.config/rclone/rclone.conf). Per-remote root folders and index
        base URLs are read from a JSON file named by {ENV_REMOTES_FILE}.
        """,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--config", help="Path to the rclone configuration file.")
    parser.add_argument("--remotes-file", help="Path to the JSON remote table.")
    parser.add_argument(
        "--obscured-keys",
        help=f"Comma-separated config keys stored obscured by rclone (default: ${ENV_OBSCURED_KEYS} or none).",
    )
    parser.add_argument(
        "--obscure-version",
        type=int,
        default=DEFAULT_OBSCURE_VERSION,
        help="Obscure format version used to reveal obscured keys.",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    upload_parser = subparsers.add_parser("upload", help="Upload a file to OneDrive")
    upload_parser.add_argument("local_file_path", help="The local file to upload.")
    upload_parser.add_argument("--remote", required=True, help="Remote name from the config.")
    upload_parser.add_argument(
        "-r", "--remote-folder", default="", help="Destination folder below the remote's root."
    )
    upload_parser.add_argument("-n", "--name", help="Remote file name. Defaults to the local name.")
    upload_parser.add_argument(
        "-c",
        "--chunk-size",
        type=int,
        default=DEFAULT_CHUNK_SIZE_MB,
        help=f"Chunk size in MiB (2-32). Default is {DEFAULT_CHUNK_SIZE_MB}.",
    )
    upload_parser.add_argument(
        "-p",
        "--parallelism",
        type=int,
        default=MIN_PARALLELISM,
        help=f"Chunks in flight ({MIN_PARALLELISM}-{MAX_PARALLELISM}). Default is {MIN_PARALLELISM}.",
    )
    upload_parser.add_argument(
        "--max-retries",
        type=int,
        default=DEFAULT_MAX_RETRIES,
        help=f"Retries per chunk. Default is {DEFAULT_MAX_RETRIES}.",
    )
    upload_parser.add_argument(
        "--retry-delay",
        type=float,
        default=DEFAULT_RETRY_DELAY,
        help=f"Base delay between chunk retries in seconds. Default is {DEFAULT_RETRY_DELAY}.",
    )

    quota_parser = subparsers.add_parser("quota", help="Show drive quota")
    quota_parser.add_argument("--remote", help="Only this remote. Default is all remotes.")

    token_parser = subparsers.add_parser("token", help="Print a valid access token")
    token_parser.add_argument("--remote", required=True, help="Remote name from the config.")

    subparsers.add_parser("remotes", help="List configured remotes")

    return parser


HANDLERS = {
    "upload": handle_upload_command,
    "quota": handle_quota_command,
    "token": handle_token_command,
    "remotes": handle_remotes_command,
}


def main(argv=None):
    """Main function to handle command-line arguments and execute commands."""
    parser = create_argument_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    if args.command != "token":
        display_header()

    cancel = threading.Event()
    client = None
    try:
        client = OneDrivePushClient.from_environment(
            config_path=args.config,
            remotes_file=args.remotes_file,
            obscured_keys=args.obscured_keys,
            obscure_version=args.obscure_version,
            max_retries=getattr(args, "max_retries", DEFAULT_MAX_RETRIES),
            retry_delay=getattr(args, "retry_delay", DEFAULT_RETRY_DELAY),
        )
        HANDLERS[args.command](args, client, cancel)
    except KeyboardInterrupt:
        cancel.set()
        console.print("\n[yellow]Interrupted. The partial upload session is abandoned.[/yellow]")
        sys.exit(130)
    except UploadCancelled as e:
        console.print(f"\n[yellow]Cancelled: {e}[/yellow]")
        sys.exit(130)
    except OdpushError as e:
        console.print(f"\n❌ [bold red]{type(e).__name__}: {e}")
        sys.exit(1)
    finally:
        if client is not None:
            client.close()


if __name__ == "__main__":
    main()
