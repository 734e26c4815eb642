import logging
import typing

import boto3
from botocore.exceptions import ClientError

_LOGGER = logging.getLogger(__name__)
_LOGGER.setLevel(logging.INFO)

JWT_SECRET_NAME = "JWT_SECRET"
CHATBOT_API_KEY_NAME = "CHATBOT_API_KEY"


class SecretsTable:
    """
    Read-only access to the application secrets kept in DynamoDB.

    Table Schema:
      - PK: secretKey ("JWT_SECRET" signs access tokens, "CHATBOT_API_KEY" authorizes essay critiques)
      - secretValue: the secret itself

    Secrets are provisioned out of band. Values are cached for the life of the Lambda
    container, shared by every instance.
    """

    _cache: typing.ClassVar[dict[str, str]] = {}

    def __init__(self, table_name: str) -> None:
        self.client = boto3.resource("dynamodb")
        self.table = self.client.Table(table_name)

    @classmethod
    def clear_cache(cls) -> None:
        cls._cache.clear()

    def _get_secret(self, secret_key: str) -> str:
        """
        :raises KeyError: if the secret is missing, empty, or DynamoDB cannot be read.
        """
        cached = self._cache.get(secret_key)
        if cached:
            return cached

        try:
            response = self.table.get_item(Key={"secretKey": secret_key})
        except ClientError as e:
            _LOGGER.error(f"Error retrieving secret {secret_key}: {e.response['Error']['Message']}")
            raise KeyError(f"Failed to retrieve secret '{secret_key}' from DynamoDB") from e

        secret_value = (response.get("Item") or {}).get("secretValue")
        if not secret_value:
            _LOGGER.error(f"Secret '{secret_key}' is missing or empty.")
            raise KeyError(f"Secret '{secret_key}' not found in secrets table")

        _LOGGER.info(f"Loaded secret '{secret_key}' from DynamoDB.")
        self._cache[secret_key] = secret_value
        return secret_value

    def get_chatbot_api_key(self) -> str:
        return self._get_secret(CHATBOT_API_KEY_NAME)

    def get_jwt_secret_key(self) -> str:
        return self._get_secret(JWT_SECRET_NAME)
