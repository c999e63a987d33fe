"""Configuration settings and models for the sync tool."""

import json
import os
from enum import Enum
from pathlib import Path
from typing import Optional, Union

import yaml
from pydantic import BaseModel, Field, root_validator, validator

from ..exceptions import ConfigurationError

DIRECTORY_ENV = "KEEPASS_DB_DIRECTORY"
FILE_NAME_ENV = "KEEPASS_DB_FILE_NAME"


class DatabaseFormat(str, Enum):
    """Supported encrypted database formats."""
    KEEPASS = "keepass"
    VAULT = "vault"


class StorageType(str, Enum):
    """Supported remote storage backends."""
    LOCAL = "local"
    GOOGLE_DRIVE = "google_drive"
    ONEDRIVE = "onedrive"
    AWS_S3 = "s3"


class SecretBackend(str, Enum):
    """Where the database passphrase is kept between runs."""
    KEYRING = "keyring"
    MEMORY = "memory"


class DatabaseSettings(BaseModel):
    """Locations of the local database and its scratch files."""
    directory: str
    file_name: str
    remote_copy_prefix: str = "remote_copy"
    sync_db_name: str = "tmp.kdbx"
    backup_directory: Optional[str] = None  # Defaults to <directory>/backups
    format: DatabaseFormat = DatabaseFormat.KEEPASS

    class Config:
        use_enum_values = True

    @validator('file_name', 'sync_db_name')
    def validate_bare_name(cls, v):
        if not v or Path(v).name != v:
            raise ValueError('must be a plain file name without directories')
        return v

    @root_validator(skip_on_failure=True)
    def validate_distinct_files(cls, values):
        file_name = values.get('file_name')
        scratch_names = {
            'sync_db_name': values.get('sync_db_name'),
            'remote copy': f"{values.get('remote_copy_prefix')}_{file_name}",
        }
        if scratch_names['sync_db_name'] == file_name:
            raise ValueError('sync_db_name must differ from file_name')
        if scratch_names['sync_db_name'] == scratch_names['remote copy']:
            raise ValueError('sync_db_name must differ from the remote copy name')
        return values

    @property
    def full_file_path(self) -> Path:
        return Path(self.directory) / self.file_name

    @property
    def remote_copy_path(self) -> Path:
        return Path(self.directory) / f"{self.remote_copy_prefix}_{self.file_name}"

    @property
    def sync_file_path(self) -> Path:
        return Path(self.directory) / self.sync_db_name

    @property
    def backup_path(self) -> Path:
        if self.backup_directory:
            return Path(self.backup_directory)
        return Path(self.directory) / "backups"

    @classmethod
    def from_env(cls) -> "DatabaseSettings":
        """Load database location from environment variables."""
        directory = os.getenv(DIRECTORY_ENV)
        if not directory:
            raise ConfigurationError("can't find directory variable")
        file_name = os.getenv(FILE_NAME_ENV)
        if not file_name:
            raise ConfigurationError("can't find db file name variable")
        return cls(directory=directory, file_name=file_name)


class StorageConfig(BaseModel):
    """Configuration for the remote copy of the database."""
    type: StorageType = StorageType.GOOGLE_DRIVE
    backup_folder: str = "Backups"
    remote_name: Optional[str] = None  # Defaults to the local file name

    # Local mirror specific
    path: Optional[str] = None

    # AWS S3 specific
    bucket: Optional[str] = None
    region: Optional[str] = "us-east-1"
    prefix: str = ""
    endpoint_url: Optional[str] = None  # S3-compatible stores

    # OneDrive specific
    root_path: str = ""

    class Config:
        use_enum_values = True

    @validator('path', always=True)
    def validate_local_path(cls, v, values):
        if values.get('type') == StorageType.LOCAL and not v:
            raise ValueError('path is required for local storage')
        return v

    @validator('bucket', always=True)
    def validate_s3_bucket(cls, v, values):
        if values.get('type') == StorageType.AWS_S3 and not v:
            raise ValueError('bucket is required for S3 storage')
        return v


class CredentialsConfig(BaseModel):
    """Credentials for the remote storage backends."""
    google_client_secrets: str = "credentials.json"
    google_token: str = "token.json"

    microsoft_app_id: Optional[str] = None
    microsoft_tenant_id: Optional[str] = None
    microsoft_token_cache: Optional[str] = None

    aws_access_key_id: Optional[str] = None
    aws_secret_access_key: Optional[str] = None
    aws_session_token: Optional[str] = None
    aws_profile: Optional[str] = None

    @classmethod
    def from_env(cls) -> "CredentialsConfig":
        """Load credentials from environment variables."""
        env_names = {
            'google_client_secrets': 'GOOGLE_CLIENT_SECRETS',
            'google_token': 'GOOGLE_TOKEN_FILE',
            'microsoft_app_id': 'MICROSOFT_APP_ID',
            'microsoft_tenant_id': 'MICROSOFT_TENANT_ID',
            'microsoft_token_cache': 'MICROSOFT_TOKEN_CACHE',
            'aws_access_key_id': 'AWS_ACCESS_KEY_ID',
            'aws_secret_access_key': 'AWS_SECRET_ACCESS_KEY',
            'aws_session_token': 'AWS_SESSION_TOKEN',
            'aws_profile': 'AWS_PROFILE',
        }
        values = {field: os.getenv(env) for field, env in env_names.items() if os.getenv(env)}
        return cls(**values)


class SecretsConfig(BaseModel):
    """Secret store holding the database passphrase."""
    backend: SecretBackend = SecretBackend.KEYRING
    service: str = "kdbx-sync"
    account: str = "database"

    class Config:
        use_enum_values = True


class CallbackConfig(BaseModel):
    """Local listener used for browser-driven authorization."""
    host: str = "localhost"
    port: int = 3030
    timeout: Optional[float] = None  # Seconds; None waits indefinitely

    @validator('port')
    def validate_port(cls, v):
        if not 0 <= v <= 65535:
            raise ValueError('port must be between 0 and 65535')
        return v


class LoggingConfig(BaseModel):
    """Logging options."""
    level: str = "INFO"
    file: Optional[str] = "logs/kdbx_sync.log"

    @validator('level')
    def validate_level(cls, v):
        level = v.upper()
        if level not in ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'):
            raise ValueError(f'unknown log level: {v}')
        return level


class SyncConfig(BaseModel):
    """Main configuration class."""
    database: DatabaseSettings
    storage: StorageConfig = Field(default_factory=StorageConfig)
    credentials: CredentialsConfig = Field(default_factory=CredentialsConfig.from_env)
    secrets: SecretsConfig = Field(default_factory=SecretsConfig)
    callback: CallbackConfig = Field(default_factory=CallbackConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @property
    def remote_name(self) -> str:
        return self.storage.remote_name or self.database.file_name

    @classmethod
    def from_yaml(cls, config_path: Union[str, Path]) -> "SyncConfig":
        """Load configuration from YAML file."""
        config_path = Path(config_path)
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path, 'r', encoding='utf-8') as f:
            config_data = yaml.safe_load(f) or {}

        return cls(**config_data)

    @classmethod
    def from_env(cls) -> "SyncConfig":
        """Build a configuration from environment variables only.

        The database location comes from ``KEEPASS_DB_DIRECTORY`` and
        ``KEEPASS_DB_FILE_NAME``; every other section takes its defaults.
        """
        return cls(database=DatabaseSettings.from_env())

    def to_yaml(self, config_path: Union[str, Path]) -> None:
        """Save configuration to YAML file."""
        config_path = Path(config_path)
        config_path.parent.mkdir(parents=True, exist_ok=True)

        with open(config_path, 'w', encoding='utf-8') as f:
            # round-trip through JSON so enums and paths are written as plain scalars
            data = json.loads(self.json(exclude_none=True))
            yaml.dump(data, f, default_flow_style=False, indent=2, sort_keys=False)
