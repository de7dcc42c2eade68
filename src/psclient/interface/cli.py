"""
psclient command line interface.

Connection options are given once, before the command:

    psclient --host srv01 --user admin run "Get-Service WinRM"
    psclient put ./tool.exe "C:\\Tools\\tool.exe"
"""

import logging
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from psclient.application.client import PSClient
from psclient.application.host_presets import configure_console_host
from psclient.application.session import PSSession
from psclient.domain.connection import DEFAULT_REMOTE_PORT, ConnectionDescriptor
from psclient.domain.errors import PSClientError
from psclient.infrastructure.logging_config import setup_logging
from psclient.infrastructure.settings import ClientSettings, SettingsRepository

logger = logging.getLogger(__name__)

console = Console()

app = typer.Typer(
    name="psclient",
    help="Run PowerShell pipelines and move files, locally or over WinRM.",
    rich_markup_mode="rich",
    no_args_is_help=True,
)


@dataclass
class CliContext:
    descriptor: ConnectionDescriptor
    settings: ClientSettings


def _build_descriptor(
    host: str,
    port: Optional[int],
    user: Optional[str],
    password: Optional[str],
    no_ssl: bool,
    validate_cert: bool,
) -> ConnectionDescriptor:
    if host.lower() in ("localhost", "(local)", "127.0.0.1", "::1") and not user:
        return ConnectionDescriptor(address=host, port=0, use_ssl=False)

    if not user:
        raise typer.BadParameter("--user is required for remote hosts")
    if password is None:
        password = typer.prompt("Password", hide_input=True)

    if port is None:
        port = 5985 if no_ssl else DEFAULT_REMOTE_PORT
    return ConnectionDescriptor.create_remote(
        host,
        user,
        password,
        port=port,
        use_ssl=not no_ssl,
        require_valid_certificate=validate_cert,
    )


def _client(ctx: typer.Context) -> PSClient:
    state: CliContext = ctx.obj
    client = PSClient(settings=state.settings)
    client.open(state.descriptor)
    configure_console_host(client.session, console)
    return client


def _fail(error: Exception) -> None:
    logger.debug("Command failed", exc_info=True)
    console.print(f"[red]Error:[/red] {error}", highlight=False)
    raise typer.Exit(1)


@app.callback()
def main_options(  # pylint: disable=too-many-positional-arguments,too-many-arguments
    ctx: typer.Context,
    host: str = typer.Option("localhost", "--host", "-H", help="Target machine (default: local)."),
    port: Optional[int] = typer.Option(
        None, "--port", "-p", min=0, max=65535,
        help="WinRM port (default 5986, or 5985 with --no-ssl)."
    ),
    user: Optional[str] = typer.Option(None, "--user", "-u", help="DOMAIN\\user or user@domain."),
    password: Optional[str] = typer.Option(
        None, "--password", envvar="PSCLIENT_PASSWORD",
        help="Password; prompted for when omitted."
    ),
    no_ssl: bool = typer.Option(False, "--no-ssl", help="Use HTTP instead of HTTPS."),
    validate_cert: bool = typer.Option(
        False, "--validate-cert", help="Validate the server certificate."
    ),
    settings_dir: Optional[Path] = typer.Option(
        None, "--settings", help="Directory containing psclient.json(c)."
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
):
    """Connection options shared by every command."""
    setup_logging(logging.DEBUG if verbose else logging.WARNING)

    try:
        settings = (
            SettingsRepository(settings_dir).load_settings() if settings_dir else ClientSettings()
        )
        descriptor = _build_descriptor(host, port, user, password, no_ssl, validate_cert)
    except ValueError as e:
        _fail(e)

    ctx.obj = CliContext(descriptor=descriptor, settings=settings)


@app.command("test")
def test_command(ctx: typer.Context):
    """Check that a session can be opened."""
    state: CliContext = ctx.obj
    if PSSession.test_connection(state.descriptor, state.settings):
        console.print(f"[green]Connected to {state.descriptor}[/green]")
        return
    console.print(f"[red]Could not connect to {state.descriptor}[/red]")
    raise typer.Exit(1)


@app.command("run")
def run_command(
    ctx: typer.Context,
    script: str = typer.Argument(..., help="PowerShell script text."),
):
    """Run a script and print its results."""
    try:
        with _client(ctx) as client:
            for item in client.executor.invoke_script(script):
                console.print(str(item), highlight=False, markup=False)
    except PSClientError as e:
        _fail(e)


@app.command("put")
def put_command(
    ctx: typer.Context,
    local: Path = typer.Argument(..., exists=True, dir_okay=False, help="Local file."),
    remote: str = typer.Argument(..., help="Remote file path."),
    no_unblock: bool = typer.Option(False, "--no-unblock", help="Do not run Unblock-File."),
):
    """Upload a file (skipped when the remote copy already matches)."""
    try:
        with _client(ctx) as client:
            client.file_system.put_file(remote, local.read_bytes(), not no_unblock)
        console.print(f"[green]Uploaded {local} -> {remote}[/green]")
    except PSClientError as e:
        _fail(e)


@app.command("get")
def get_command(
    ctx: typer.Context,
    remote: str = typer.Argument(..., help="Remote file path."),
    local: Path = typer.Argument(..., dir_okay=False, help="Local destination."),
):
    """Download a file."""
    try:
        with _client(ctx) as client:
            data = client.file_system.get_file_bytes(remote)
    except PSClientError as e:
        _fail(e)

    if data is None:
        _fail(FileNotFoundError(f"Remote file not found: {remote}"))
    local.write_bytes(data)
    console.print(f"[green]Downloaded {remote} -> {local} ({len(data)} bytes)[/green]")


@app.command("hash")
def hash_command(
    ctx: typer.Context,
    remote: str = typer.Argument(..., help="Remote file path."),
    algorithm: Optional[str] = typer.Option(
        None, "--algorithm", "-a", help="Hash algorithm, e.g. MD5, SHA256 or MD5+LENGTH."
    ),
):
    """Print the hash of a remote file."""
    try:
        with _client(ctx) as client:
            console.print(client.file_system.get_file_hash(remote, algorithm), highlight=False)
    except (PSClientError, ValueError) as e:
        _fail(e)


@app.command("unzip")
def unzip_command(
    ctx: typer.Context,
    archive: Path = typer.Argument(..., exists=True, dir_okay=False, help="Local zip file."),
    remote_dir: str = typer.Argument(..., help="Remote output directory."),
):
    """Extract a local zip archive into a remote directory."""
    try:
        with _client(ctx) as client, zipfile.ZipFile(archive) as zf:
            client.zip_extractor.extract_to(zf, remote_dir)
        console.print(f"[green]Extracted {archive} -> {remote_dir}[/green]")
    except (PSClientError, zipfile.BadZipFile, ValueError) as e:
        _fail(e)


@app.command("rm")
def rm_command(
    ctx: typer.Context,
    remote: str = typer.Argument(..., help="Remote file or folder."),
    recursive: bool = typer.Option(False, "--recursive", "-r", help="Delete a folder and its contents."),
):
    """Delete a remote file, or a folder with --recursive."""
    try:
        with _client(ctx) as client:
            if recursive:
                client.file_system.delete_folder_recursively(remote)
            else:
                client.file_system.delete_file(remote)
        console.print(f"[green]Deleted {remote}[/green]")
    except PSClientError as e:
        _fail(e)


def main() -> int:
    app()
    return 0
