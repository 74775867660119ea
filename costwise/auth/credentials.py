"""Account credential handling: encrypted keys, profiles and STS assume role."""

import json
import logging
import threading
from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Tuple

import boto3
from botocore.exceptions import BotoCoreError, ClientError, NoCredentialsError
from cryptography.fernet import Fernet, InvalidToken

from costwise.core.exceptions import AuthenticationError, ConfigurationError
from costwise.services.models import Account


logger = logging.getLogger(__name__)

ROLE_PREFIX = 'arn:aws:iam::'
PROFILE_PREFIX = 'profile:'
ENCRYPTED_PREFIX = 'enc:'

# Permissions the analyzers and gateways call
READ_ONLY_ACTIONS = [
    'ec2:DescribeInstances',
    'ec2:DescribeAddresses',
    'ec2:DescribeReservedInstances',
    'autoscaling:DescribeAutoScalingInstances',
    'rds:DescribeDBInstances',
    's3:ListAllMyBuckets',
    's3:GetBucketVersioning',
    's3:GetLifecycleConfiguration',
    'elasticache:DescribeCacheClusters',
    'elasticloadbalancing:DescribeLoadBalancers',
    'elasticloadbalancing:DescribeLoadBalancerAttributes',
    'elasticloadbalancing:DescribeTargetGroups',
    'elasticloadbalancing:DescribeTargetHealth',
    'lambda:ListFunctions',
    'cloudwatch:GetMetricStatistics',
    'pricing:GetProducts',
    'ce:GetCostAndUsage',
]


class CredentialCipher:
    """Encrypts and decrypts stored access keys with an injected Fernet key."""

    def __init__(self, key: str):
        """Initialize the cipher.

        Args:
            key: URL-safe base64 Fernet key

        Raises:
            ConfigurationError: If the key is not a valid Fernet key
        """
        try:
            self._fernet = Fernet(key.encode() if isinstance(key, str) else key)
        except (ValueError, TypeError) as e:
            raise ConfigurationError(f"Invalid credential encryption key: {e}")

    @staticmethod
    def generate_key() -> str:
        return Fernet.generate_key().decode()

    def encrypt(self, data: str) -> str:
        return self._fernet.encrypt(data.encode()).decode()

    def decrypt(self, token: str) -> str:
        """Raises: AuthenticationError if the token was not produced with this key."""
        try:
            return self._fernet.decrypt(token.encode()).decode()
        except InvalidToken:
            raise AuthenticationError("Stored credentials could not be decrypted with the configured key")

    def encrypt_access_keys(self, access_key_id: str, secret_access_key: str) -> str:
        """Build an ``enc:`` credential reference for an access key pair."""
        return ENCRYPTED_PREFIX + self.encrypt(f"{access_key_id}:{secret_access_key}")


class SessionFactory:
    """Builds boto3 sessions for accounts from their credential reference."""

    def __init__(self, cipher: Optional[CredentialCipher] = None, session_name: str = 'costwise-analysis'):
        self.cipher = cipher
        self.session_name = session_name
        self._role_cache: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()

    def session_for(self, account: Account) -> boto3.Session:
        """Return an authenticated session scoped to the account's region.

        Raises:
            AuthenticationError: If credentials cannot be resolved
        """
        ref = account.credential_ref or ''
        if ref.startswith(ROLE_PREFIX):
            credentials = self._assume_role(ref)
            return boto3.Session(
                aws_access_key_id=credentials['AccessKeyId'],
                aws_secret_access_key=credentials['SecretAccessKey'],
                aws_session_token=credentials['SessionToken'],
                region_name=account.region,
            )
        if ref.startswith(PROFILE_PREFIX):
            profile = ref[len(PROFILE_PREFIX):]
            try:
                return boto3.Session(profile_name=profile, region_name=account.region)
            except BotoCoreError as e:
                raise AuthenticationError(f"The configured AWS profile could not be loaded ({type(e).__name__})")
        if ref.startswith(ENCRYPTED_PREFIX):
            access_key_id, secret_access_key = self._decrypt_keys(ref[len(ENCRYPTED_PREFIX):])
            return boto3.Session(
                aws_access_key_id=access_key_id,
                aws_secret_access_key=secret_access_key,
                region_name=account.region,
            )
        if ref:
            raise AuthenticationError(
                f"Unrecognised credential reference for account {account.account_id}. "
                f"Expected a role ARN, '{PROFILE_PREFIX}<name>' or '{ENCRYPTED_PREFIX}<token>'."
            )
        # Default credential chain
        return boto3.Session(region_name=account.region)

    def _decrypt_keys(self, token: str) -> Tuple[str, str]:
        if self.cipher is None:
            raise AuthenticationError("Encrypted credentials found but no encryption key was provided")
        plain = self.cipher.decrypt(token)
        access_key_id, sep, secret_access_key = plain.partition(':')
        if not sep or not access_key_id or not secret_access_key:
            raise AuthenticationError("Decrypted credentials are not in ACCESS_KEY:SECRET_KEY form")
        return access_key_id, secret_access_key

    def _assume_role(self, role_arn: str) -> Dict[str, Any]:
        with self._lock:
            cached = self._role_cache.get(role_arn)
            # 5 minute buffer before expiry
            if cached and datetime.utcnow() < cached['Expiration'] - timedelta(minutes=5):
                logger.debug("Using cached role credentials")
                return cached

        try:
            logger.info("Assuming IAM role for analysis")
            response = boto3.client('sts').assume_role(
                RoleArn=role_arn,
                RoleSessionName=self.session_name,
                DurationSeconds=3600,
            )
        except ClientError as e:
            error_code = e.response.get('Error', {}).get('Code', 'Unknown')
            if error_code == 'AccessDenied':
                raise AuthenticationError(
                    "Access denied when assuming the configured role. "
                    "Check the role's trust policy and your current credentials."
                )
            raise AuthenticationError(f"Failed to assume the configured IAM role: {error_code}")
        except NoCredentialsError:
            raise AuthenticationError(
                "No AWS credentials found to assume the role. Configure them with 'aws configure', "
                "environment variables, or an instance profile."
            )
        except BotoCoreError as e:
            raise AuthenticationError(f"AWS configuration error: {e}")

        credentials = dict(response['Credentials'])
        credentials['Expiration'] = credentials['Expiration'].replace(tzinfo=None)
        with self._lock:
            self._role_cache[role_arn] = credentials
        return credentials


def create_readonly_policy() -> str:
    """Return the IAM policy document granting what an analysis run needs."""
    policy = {
        'Version': '2012-10-17',
        'Statement': [{
            'Sid': 'CostwiseReadOnlyAnalysis',
            'Effect': 'Allow',
            'Action': READ_ONLY_ACTIONS,
            'Resource': '*',
        }],
    }
    return json.dumps(policy, indent=2)
