import enum
import json
import logging
import re
import typing

from college_tracker.utils.base_types import UserId

_LOGGER = logging.getLogger(__name__)


QueryParams = typing.NewType("QueryParams", dict[str, str])


class ErrorCode(enum.Enum):
    """
    Error codes returned to clients in the `errorCode` field of an error body.
    Each member carries its HTTP status code and a default, client-safe message.
    """

    VALIDATION_ERROR = (400, "Invalid request data")
    AUTHENTICATION_FAILED = (401, "Authentication required")
    AUTHORIZATION_FAILED = (403, "Access denied")
    RESOURCE_NOT_FOUND = (404, "Resource not found")
    METHOD_NOT_ALLOWED = (405, "Method not allowed")
    RATE_LIMIT_EXCEEDED = (429, "Rate limit exceeded")
    INTERNAL_ERROR = (500, "Internal server error")
    AI_SERVICE_UNAVAILABLE = (503, "AI service temporarily unavailable")

    def __init__(self, status_code: int, default_message: str) -> None:
        self.status_code = status_code
        self.default_message = default_message

    @classmethod
    def from_status_code(cls, status_code: int) -> "ErrorCode":
        for member in cls:
            if member.status_code == status_code:
                return member
        return cls.INTERNAL_ERROR


def get_method(event: dict) -> str:
    return event.get("requestContext", {}).get("http", {}).get("method", "UNKNOWN")


def get_path(event: dict) -> str:
    return event.get("requestContext", {}).get("http", {}).get("path", "")


def get_query_string_parameters(event: dict) -> QueryParams:
    return QueryParams(event.get("queryStringParameters") or {})


def get_user_id_from_event(event: dict[str, typing.Any]) -> typing.Optional[UserId]:
    """
    Extracts user ID from the Lambda event context provided by the custom Lambda Authorizer.
    The authorizer places the decoded JWT payload into the 'lambda' key.
    """
    try:
        user_id = event.get("requestContext", {}).get("authorizer", {}).get("lambda", {}).get("sub")
        if user_id:
            return UserId(str(user_id))

        _LOGGER.warning("User ID ('sub') not found in authorizer's lambda context.")
        return None
    except Exception as e:
        _LOGGER.error("Error extracting user_id from event: %s", str(e))
        return None


def get_allowed_origin(event: dict[str, typing.Any]) -> str:
    """
    Validates the Origin header against allowed patterns and returns it if valid.

    Allowed Origins:
    - localhost/127.0.0.1 (any port) - for local development
    - *.github.io - for GitHub Pages deployments

    :returns: The origin if valid, otherwise "null" (which causes browser to deny the response)
    """
    origin = event.get("headers", {}).get("origin", "")

    # No origin header present (e.g., curl/Postman testing, direct API calls)
    if not origin:
        return "*"

    if origin.startswith("http://localhost:") or origin.startswith("http://127.0.0.1:"):
        return origin

    allowed_patterns = [r"^https://.*\.github\.io$"]
    for pattern in allowed_patterns:
        if re.match(pattern, origin):
            return origin

    _LOGGER.warning(f"Origin not in allowed patterns: {origin}")
    return "null"


def format_lambda_response(
    status_code: int,
    body: typing.Any,
    *,
    event: typing.Optional[dict[str, typing.Any]] = None,
    additional_headers: typing.Optional[dict[str, str]] = None,
) -> dict[str, typing.Any]:
    """
    Formats API Gateway proxy responses with CORS headers.
    """
    allowed_origin = get_allowed_origin(event) if event else "*"

    headers = {
        "Content-Type": "application/json",
        "Access-Control-Allow-Origin": allowed_origin,
        "Access-Control-Allow-Headers": "Content-Type,Authorization,X-Amz-Date,X-Api-Key,X-Amz-Security-Token",
        "Access-Control-Allow-Methods": "OPTIONS,GET,POST,PUT,PATCH,DELETE",
    }
    if additional_headers:
        headers.update(additional_headers)

    return {
        "statusCode": status_code,
        "headers": headers,
        "body": json.dumps(body) if body is not None else None,
    }


def create_error_response(
    error_code: ErrorCode,
    message: typing.Optional[str] = None,
    *,
    details: typing.Any = None,
    event: typing.Optional[dict[str, typing.Any]] = None,
) -> dict[str, typing.Any]:
    """
    Builds a standardized error response: {"message", "errorCode", ["details"]}.
    The status code always comes from the error code.
    """
    body: dict[str, typing.Any] = {
        "message": message or error_code.default_message,
        "errorCode": error_code.name,
    }
    if details is not None:
        body["details"] = details

    return format_lambda_response(error_code.status_code, body, event=event)
