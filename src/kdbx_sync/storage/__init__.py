"""Remote storage backends for the database copy."""

from ..config.settings import CallbackConfig, CredentialsConfig, StorageConfig, StorageType
from ..exceptions import ConfigurationError
from .base import RemoteFile, RemoteStorage
from .local import LocalMirrorStorage


def create_storage(storage: StorageConfig, credentials: CredentialsConfig,
                   callback: CallbackConfig) -> RemoteStorage:
    """Build the configured backend.

    Cloud client libraries are only imported for the backend in use.

    Args:
        storage: Backend selection and location
        credentials: Provider credentials
        callback: Local listener settings for interactive authorization

    Returns:
        Remote storage instance
    """
    if storage.type == StorageType.LOCAL:
        return LocalMirrorStorage(storage.path)

    if storage.type == StorageType.GOOGLE_DRIVE:
        from ..auth.google_auth import GoogleDriveAuth
        from .google_drive import GoogleDriveStorage

        auth = GoogleDriveAuth(
            credentials.google_client_secrets,
            credentials.google_token,
            host=callback.host,
            port=callback.port,
            timeout=callback.timeout,
        )
        return GoogleDriveStorage(auth)

    if storage.type == StorageType.ONEDRIVE:
        from ..auth.microsoft_auth import MicrosoftGraphAuth
        from .onedrive import OneDriveStorage

        if not credentials.microsoft_app_id:
            raise ConfigurationError("microsoft_app_id is required for OneDrive storage")
        auth = MicrosoftGraphAuth(
            credentials.microsoft_app_id,
            tenant_id=credentials.microsoft_tenant_id,
            token_cache_path=credentials.microsoft_token_cache,
            host=callback.host,
            port=callback.port,
            timeout=callback.timeout,
        )
        return OneDriveStorage(auth, root_path=storage.root_path)

    if storage.type == StorageType.AWS_S3:
        from ..auth.cloud_auth import AWSAuth
        from .s3 import S3Storage

        auth = AWSAuth(
            access_key_id=credentials.aws_access_key_id,
            secret_access_key=credentials.aws_secret_access_key,
            session_token=credentials.aws_session_token,
            region=storage.region or "us-east-1",
            endpoint_url=storage.endpoint_url,
            profile_name=credentials.aws_profile,
        )
        return S3Storage(auth, storage.bucket, storage.prefix)

    raise ConfigurationError(f"Unknown storage type: {storage.type}")


__all__ = ["RemoteFile", "RemoteStorage", "LocalMirrorStorage", "create_storage"]
