"""AWS credentials and S3 client construction."""

import logging
from typing import Optional

import boto3
from botocore.config import Config as BotoConfig

logger = logging.getLogger(__name__)


class AWSAuth:
    """Build S3 clients from static keys, a named profile or the default chain.

    Static keys win over ``profile_name``. With neither, boto3 resolves
    credentials itself (environment, shared config files, instance role).
    """

    def __init__(
        self,
        access_key_id: Optional[str] = None,
        secret_access_key: Optional[str] = None,
        session_token: Optional[str] = None,
        region: str = "us-east-1",
        endpoint_url: Optional[str] = None,
        profile_name: Optional[str] = None,
        max_attempts: int = 5,
    ):
        """Initialize AWS authentication.

        Args:
            access_key_id: AWS access key ID
            secret_access_key: AWS secret access key
            session_token: AWS session token (for temporary credentials)
            region: AWS region
            endpoint_url: Custom endpoint for S3-compatible stores
            profile_name: Shared-config profile used when no static keys are given
            max_attempts: Retry budget for throttled or failed requests
        """
        self.access_key_id = access_key_id
        self.secret_access_key = secret_access_key
        self.session_token = session_token
        self.region = region
        self.endpoint_url = endpoint_url
        self.profile_name = profile_name
        self.max_attempts = max_attempts
        self._session: Optional[boto3.Session] = None
        self._s3_client = None

    @property
    def has_static_keys(self) -> bool:
        return bool(self.access_key_id and self.secret_access_key)

    def _get_session(self) -> boto3.Session:
        if self._session is None:
            if self.has_static_keys:
                self._session = boto3.Session(
                    aws_access_key_id=self.access_key_id,
                    aws_secret_access_key=self.secret_access_key,
                    aws_session_token=self.session_token,
                    region_name=self.region,
                )
                source = "static keys"
            else:
                self._session = boto3.Session(profile_name=self.profile_name, region_name=self.region)
                source = f"profile {self.profile_name}" if self.profile_name else "default credential chain"
            logger.debug(f"AWS session for {self.region} using {source}")
        return self._session

    def get_s3_client(self):
        """Get an S3 client, created on first use.

        Returns:
            boto3 S3 client
        """
        if self._s3_client is None:
            self._s3_client = self._get_session().client(
                's3',
                endpoint_url=self.endpoint_url,
                config=BotoConfig(retries={'max_attempts': self.max_attempts, 'mode': 'standard'}),
            )
        return self._s3_client
