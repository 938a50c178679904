# Built-in imports
import json
from typing import Any, Dict, Optional

# External imports
import boto3
from botocore.exceptions import ClientError

# Own imports
from pharmacare.common.logger import custom_logger

logger = custom_logger()


class SecretsHelper:
    """Custom Secrets Manager Helper for reading JSON secrets."""

    def __init__(self, secret_name: str, endpoint_url: Optional[str] = None) -> None:
        """
        :param secret_name (str): Name (or ARN) of the secret to read.
        :param endpoint_url (Optional(str)): Endpoint for Secrets Manager (only for local tests).
        """
        self.secret_name = secret_name
        self.client = boto3.client("secretsmanager", endpoint_url=endpoint_url)
        self._cached: Optional[Dict[str, Any]] = None

    def _load_secret_json(self) -> Dict[str, Any]:
        try:
            response = self.client.get_secret_value(SecretId=self.secret_name)
        except ClientError as error:
            logger.error(
                "get_secret_value operation failed",
                extra={
                    "secret_name": self.secret_name,
                    "error_code": error.response.get("Error", {}).get("Code"),
                },
            )
            raise error

        if "SecretString" not in response:
            raise RuntimeError("Secret is binary; expected a plaintext JSON SecretString.")
        try:
            return json.loads(response["SecretString"])
        except json.JSONDecodeError:
            raise RuntimeError("Expected JSON in SecretString, but parsing failed.")

    def get_secret_value(self, key: Optional[str] = None) -> Any:
        """
        Method to read the secret (cached after the first call).
        :param key (Optional(str)): When given, return only that key of the JSON secret.
        """
        if self._cached is None:
            self._cached = self._load_secret_json()
        if key is None:
            return dict(self._cached)
        return self._cached.get(key)
