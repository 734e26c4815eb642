import logging
import os
import typing

from college_tracker.dynamodb.secrets_table import SecretsTable
from college_tracker.utils.aws_env_vars import get_secrets_table_name
from college_tracker.utils.jwt_utils import JwtWrapper

_LOGGER = logging.getLogger(__name__)
_LOGGER.setLevel(logging.INFO)

DENY_ALL_RESOURCE = "arn:aws:execute-api:*:*:*/*/*"


def _generate_iam_policy(principal_id: str, effect: str, resource: str, context: dict) -> dict:
    """
    Generates the IAM policy required by API Gateway Lambda authorizers.
    The 'context' reaches the route lambdas as event['requestContext']['authorizer']['lambda'].
    """
    return {
        "principalId": principal_id,
        "policyDocument": {
            "Version": "2012-10-17",
            "Statement": [{"Action": "execute-api:Invoke", "Effect": effect, "Resource": resource}],
        },
        "context": context,
    }


class AuthorizerLambda:
    def __init__(self, jwt_wrapper: JwtWrapper, secrets_table: SecretsTable) -> None:
        self.jwt_wrapper = jwt_wrapper
        self.secrets_table = secrets_table

    def _build_resource_arn(self, event: dict) -> str:
        # Format: arn:aws:execute-api:region:account-id:api-id/stage/METHOD/route
        region = os.environ.get("AWS_REGION")
        aws_account_id = event["methodArn"].split(":")[4]
        api_id = event["requestContext"]["apiId"]
        stage = event["requestContext"]["stage"]
        return f"arn:aws:execute-api:{region}:{aws_account_id}:{api_id}/{stage}/*"

    def handle(self, event: dict) -> dict:
        try:
            resource_arn = self._build_resource_arn(event)
        except (KeyError, IndexError):
            _LOGGER.error("Could not construct resource ARN from event.", exc_info=True)
            return _generate_iam_policy("user", "Deny", DENY_ALL_RESOURCE, {})

        try:
            token = event["headers"]["authorization"].split(" ")[1]
        except (KeyError, IndexError, AttributeError):
            _LOGGER.warning("Authorization token missing or malformed.")
            return _generate_iam_policy("user", "Deny", resource_arn, {})

        payload = self.jwt_wrapper.verify_token(token, self.secrets_table)
        if not payload or "sub" not in payload:
            _LOGGER.warning("Token is invalid or expired.")
            return _generate_iam_policy("user", "Deny", resource_arn, {})

        user_id = str(payload["sub"])
        _LOGGER.info(f"Token validated successfully for user: {user_id}")
        return _generate_iam_policy(user_id, "Allow", resource_arn, {"sub": user_id})


def authorizer_lambda_handler(event: dict, context: typing.Any) -> dict:
    """
    Lambda authorizer for the HTTP API. Validates the access token from the
    Authorization header and passes the user id on as 'sub'.
    """
    _LOGGER.info("Authorizer lambda handler invoked.")

    try:
        handler = AuthorizerLambda(
            jwt_wrapper=JwtWrapper(),
            secrets_table=SecretsTable(get_secrets_table_name()),
        )
        return handler.handle(event)
    except Exception as e:
        _LOGGER.critical(f"Critical error in authorizer_lambda_handler: {e}", exc_info=True)
        return _generate_iam_policy("user", "Deny", DENY_ALL_RESOURCE, {})
