"""Configuration management for the sync tool."""

from .settings import DatabaseSettings, StorageConfig, CredentialsConfig, SyncConfig

__all__ = ["DatabaseSettings", "StorageConfig", "CredentialsConfig", "SyncConfig"]
