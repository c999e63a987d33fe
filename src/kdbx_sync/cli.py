"""Command-line interface for the database sync tool."""

import os
import sys
from pathlib import Path

import click
from pydantic import ValidationError
from rich import print as rprint
from rich.console import Console
from rich.table import Table

from . import __version__
from .auth.passphrase import PassphraseProvider
from .auth.secret_store import KeyringSecretStore, MemorySecretStore, SecretStore
from .config.settings import (
    CredentialsConfig,
    DatabaseSettings,
    SecretBackend,
    StorageConfig,
    SyncConfig,
)
from .exceptions import BackupNotFoundError, ConfigurationError, KdbxSyncError, UploadPendingError
from .storage import create_storage
from .sync.backup_manager import BackupManager
from .sync.checksum import equal_content
from .sync.protocol import RoundReport, SyncRound
from .utils.file_utils import FileHelper
from .utils.logging import setup_logging
from .vault import create_codec

PASSPHRASE_ENV = "KDBX_SYNC_PASSPHRASE"

console = Console()

config_option = click.option(
    '--config', '-c',
    type=click.Path(path_type=Path),
    default=Path('config/config.yaml'),
    help='Path to configuration file (falls back to KEEPASS_DB_* environment variables)',
)


@click.group()
@click.version_option(version=__version__)
@click.option('--verbose', '-v', is_flag=True, help='Also log to the console')
@click.pass_context
def cli(ctx, verbose: bool):
    """KeePass Database Sync

    Keeps a local encrypted password database synchronized with its copy on a
    cloud drive. Both sides are backed up before anything is replaced.
    """
    ctx.ensure_object(dict)
    ctx.obj['verbose'] = verbose


def _load_config(ctx, config: Path) -> SyncConfig:
    """Load the YAML config, or build one from the environment when it is missing."""
    try:
        if config.exists():
            sync_config = SyncConfig.from_yaml(config)
        else:
            sync_config = SyncConfig.from_env()
    except ValidationError as e:
        raise ConfigurationError(f"invalid configuration: {e}", path=config) from e

    setup_logging(
        log_level=sync_config.logging.level,
        log_file=Path(sync_config.logging.file) if sync_config.logging.file else None,
        log_to_console=ctx.obj.get('verbose', False),
    )
    return sync_config


def _secret_store(sync_config: SyncConfig) -> SecretStore:
    if sync_config.secrets.backend == SecretBackend.MEMORY:
        passphrase = os.getenv(PASSPHRASE_ENV)
        return MemorySecretStore({sync_config.secrets.account: passphrase} if passphrase else None)
    return KeyringSecretStore(sync_config.secrets.service)


def _label(value) -> str:
    """Plain name of a config value that may still be an enum member."""
    return str(getattr(value, "value", value))


def _fail(error: BaseException) -> None:
    """Print the error with its causal chain and exit non-zero."""
    console.print(f"❌ Error: {error}", style="red bold")
    cause = error.__cause__
    while cause is not None:
        console.print(f"   caused by: {cause}", style="red")
        cause = cause.__cause__
    if isinstance(error, UploadPendingError):
        console.print("⚠️ The remote copy is out of date, run 'kdbx-sync upload' once the problem is fixed",
                      style="yellow bold")
    sys.exit(1)


def _build_round(sync_config: SyncConfig, with_credentials: bool = True) -> SyncRound:
    storage = create_storage(sync_config.storage, sync_config.credentials, sync_config.callback)
    codec = create_codec(sync_config.database.format)
    credentials = None
    if with_credentials:
        credentials = PassphraseProvider(
            _secret_store(sync_config),
            secret_id=sync_config.secrets.account,
            host=sync_config.callback.host,
            port=sync_config.callback.port,
            timeout=sync_config.callback.timeout,
        )
    return SyncRound(
        sync_config.database,
        storage,
        codec,
        credentials,
        remote_name=sync_config.remote_name,
        remote_backup_folder=sync_config.storage.backup_folder,
    )


def _display_round(report: RoundReport):
    """Display the completed states of a round."""
    table = Table(title="Sync Round")
    table.add_column("State", style="cyan")
    table.add_column("Duration", justify="right")

    for result in report.states:
        table.add_row(result.state.value, f"{result.duration:.2f}s")

    console.print(table)

    rprint("\n📊 [bold]Summary:[/bold]")
    if report.local_backup:
        rprint(f"   • Local backup: {report.local_backup}")
    if report.remote_backup:
        rprint(f"   • Remote backup: {report.remote_backup}")
    if report.merge is not None:
        summary = report.merge.summary()
        rprint(f"   • Entries: {summary['total']} "
               f"({summary['common']} common, {summary['local_only']} local only, "
               f"{summary['remote_only']} remote only)")
        rprint(f"   • Updated from remote: [green]{summary['remote_wins']}[/green]")


@cli.command()
@config_option
@click.pass_context
def sync(ctx, config: Path):
    """Run one sync round: backup, merge, verify, promote, upload."""
    try:
        sync_config = _load_config(ctx, config)
        sync_round = _build_round(sync_config)

        with console.status("Synchronizing..."):
            report = sync_round.run()

        _display_round(report)
        console.print("\n✅ Database synchronized", style="green bold")

    except KdbxSyncError as e:
        _fail(e)


@cli.command()
@config_option
@click.option('--remote', '-r', is_flag=True, help='Also back up the remote copy')
@click.pass_context
def backup(ctx, config: Path, remote: bool):
    """Take a backup of the local database without syncing."""
    try:
        sync_config = _load_config(ctx, config)
        settings = sync_config.database

        snapshot = BackupManager(settings.backup_path).take_backup(settings.full_file_path)
        console.print(f"✅ Local backup written to {snapshot}", style="green")

        if remote:
            storage = create_storage(sync_config.storage, sync_config.credentials, sync_config.callback)
            remote_snapshot = storage.backup_file(sync_config.remote_name, sync_config.storage.backup_folder)
            console.print(f"✅ Remote backup created as {sync_config.storage.backup_folder}/{remote_snapshot.name}",
                          style="green")

    except KdbxSyncError as e:
        _fail(e)


@cli.command()
@config_option
@click.pass_context
def verify(ctx, config: Path):
    """Check that the latest backup matches the local database."""
    try:
        settings = _load_config(ctx, config).database
        snapshot = BackupManager(settings.backup_path).latest_backup()

        if equal_content(snapshot.path, settings.full_file_path):
            console.print(f"✅ {snapshot.name} matches {settings.file_name}", style="green")
        else:
            console.print(f"❌ {snapshot.name} differs from {settings.file_name}", style="red bold")
            sys.exit(1)

    except KdbxSyncError as e:
        _fail(e)


@cli.command()
@config_option
@click.pass_context
def upload(ctx, config: Path):
    """Upload the local database to the remote, e.g. after an interrupted round."""
    try:
        sync_config = _load_config(ctx, config)
        _build_round(sync_config, with_credentials=False).upload()
        console.print(f"✅ Uploaded {sync_config.database.file_name} as {sync_config.remote_name}", style="green")

    except KdbxSyncError as e:
        _fail(e)


@cli.command()
@config_option
@click.pass_context
def status(ctx, config: Path):
    """Show configuration and the latest local backup."""
    try:
        sync_config = _load_config(ctx, config)
        settings = sync_config.database

        table = Table(title="Configuration")
        table.add_column("Setting", style="cyan")
        table.add_column("Value", style="magenta")
        table.add_row("Database", str(settings.full_file_path))
        table.add_row("Format", _label(settings.format))
        table.add_row("Backups", str(settings.backup_path))
        table.add_row("Storage", _label(sync_config.storage.type))
        table.add_row("Remote name", sync_config.remote_name)
        table.add_row("Remote backups", sync_config.storage.backup_folder)
        table.add_row("Secrets", _label(sync_config.secrets.backend))
        console.print(table)

        if settings.full_file_path.exists():
            size = FileHelper.format_file_size(settings.full_file_path.stat().st_size)
            rprint(f"\n📁 Local database: {size}")
        else:
            rprint("\n⚠️ [yellow]Local database not found[/yellow]")

        snapshot = None
        if settings.backup_path.is_dir():
            try:
                snapshot = BackupManager(settings.backup_path).latest_backup()
            except BackupNotFoundError:
                pass
        if snapshot:
            rprint(f"🗄️ Latest backup: {snapshot.name} ({snapshot.modified:%Y-%m-%d %H:%M:%S})")
        else:
            rprint("🗄️ Latest backup: [yellow]none[/yellow]")

    except KdbxSyncError as e:
        _fail(e)


@cli.command()
@config_option
@click.pass_context
def test(ctx, config: Path):
    """Test the connection to the configured remote storage."""
    try:
        sync_config = _load_config(ctx, config)
        storage = create_storage(sync_config.storage, sync_config.credentials, sync_config.callback)

        console.print("🔍 Testing connection...\n")
        connected = storage.test_connection()

        table = Table(title="Connection Test Results")
        table.add_column("Service", style="cyan")
        table.add_column("Status", style="magenta")
        status_text = "✅ Connected" if connected else "❌ Failed"
        status_style = "green" if connected else "red"
        table.add_row(storage.name, f"[{status_style}]{status_text}[/{status_style}]")
        console.print(table)

        if not connected:
            console.print("\n⚠️ Connection failed. Check your configuration.", style="yellow bold")
            sys.exit(1)

    except KdbxSyncError as e:
        _fail(e)


@cli.command('set-passphrase')
@config_option
@click.password_option('--passphrase', prompt='Database passphrase')
@click.pass_context
def set_passphrase(ctx, config: Path, passphrase: str):
    """Store the database passphrase in the secret store."""
    try:
        sync_config = _load_config(ctx, config)
        _secret_store(sync_config).set_secret(sync_config.secrets.account, passphrase)
        console.print(f"✅ Passphrase stored in {_label(sync_config.secrets.backend)}", style="green")

    except KdbxSyncError as e:
        _fail(e)


@cli.command()
@click.option('--config', '-c',
              type=click.Path(path_type=Path),
              default=Path('config/config.yaml'),
              help='Path to save configuration file')
@click.option('--directory', '-d', default=str(Path.home() / 'KeePass'), help='Directory holding the database')
@click.option('--file-name', '-f', default='passwords.kdbx', help='Database file name')
@click.option('--storage', '-s',
              type=click.Choice(['google_drive', 'onedrive', 's3', 'local']),
              default='google_drive',
              help='Remote storage backend')
def init(config: Path, directory: str, file_name: str, storage: str):
    """Initialize a new configuration file."""
    if config.exists():
        if not click.confirm(f"Configuration file {config} already exists. Overwrite?"):
            return

    console.print("🚀 Creating new configuration file...")

    storage_options = {'type': storage}
    if storage == 'local':
        storage_options['path'] = str(Path(directory) / 'remote')
    elif storage == 's3':
        storage_options['bucket'] = 'my-keepass-bucket'
        storage_options['prefix'] = 'keepass/'

    sync_config = SyncConfig(
        database=DatabaseSettings(directory=directory, file_name=file_name),
        storage=StorageConfig(**storage_options),
        credentials=CredentialsConfig(),
    )
    sync_config.to_yaml(config)

    console.print(f"✅ Configuration saved to {config}", style="green")
    console.print("\n📝 Next steps:")
    console.print("1. Edit the configuration file to match your setup")
    console.print("2. Run 'kdbx-sync set-passphrase' to store the database passphrase")
    console.print("3. Run 'kdbx-sync test' to verify the remote connection")
    console.print("4. Run 'kdbx-sync sync' to synchronize")


if __name__ == '__main__':
    cli()
