import logging
import typing

import requests
from pydantic import ValidationError

from college_tracker.dynamodb.secrets_table import SecretsTable
from college_tracker.dynamodb.users_table import UsersTable
from college_tracker.models.auth_models import LoginRequest, LoginResponse
from college_tracker.utils.apig_utils import (
    ErrorCode,
    create_error_response,
    format_lambda_response,
    get_method,
    get_path,
)
from college_tracker.utils.aws_env_vars import (
    get_google_client_id,
    get_secrets_table_name,
    get_users_table_name,
)
from college_tracker.utils.jwt_utils import JwtWrapper

_LOGGER = logging.getLogger(__name__)
_LOGGER.setLevel(logging.INFO)

GOOGLE_TOKEN_INFO_URL = "https://www.googleapis.com/oauth2/v3/tokeninfo"


class AuthApiHandler:
    def __init__(
        self,
        users_table: UsersTable,
        secrets_table: SecretsTable,
        google_client_id: str,
        jwt_wrapper: JwtWrapper,
    ):
        self.users_table = users_table
        self.secrets_table = secrets_table
        self.google_client_id = google_client_id
        self.jwt_wrapper = jwt_wrapper

    def _verify_google_token(self, token: str) -> typing.Optional[dict]:
        try:
            response = requests.get(GOOGLE_TOKEN_INFO_URL, params={"id_token": token}, timeout=10)
            response.raise_for_status()
            token_info = response.json()

            if token_info.get("aud") != self.google_client_id:
                _LOGGER.error("Google token audience mismatch.")
                return None

            if token_info.get("email_verified") not in (True, "true"):
                _LOGGER.warning(f"Google email '{token_info.get('email')}' is not verified.")
                return None

            return token_info
        except requests.RequestException as e:
            _LOGGER.error(f"Error verifying Google token: {e}")
            return None

    def _handle_login(self, event: dict) -> dict:
        """
        Exchanges a Google ID token for an access token. First-time users are created as
        students; counselors and parents usually already exist because a student invited them.
        """
        try:
            body = LoginRequest.model_validate_json(event.get("body") or "{}")
            google_token_info = self._verify_google_token(body.googleIdToken)

            if not google_token_info or "email" not in google_token_info:
                return create_error_response(
                    ErrorCode.AUTHENTICATION_FAILED, "Invalid Google token or missing email.", event=event
                )

            user = self.users_table.get_or_create_user(
                email=google_token_info["email"],
                name=google_token_info.get("name"),
            )
            self.users_table.update_last_login(user.userId)

            access_token = self.jwt_wrapper.create_access_token(user.userId, self.secrets_table)
            _LOGGER.info(f"User {user.userId} ({user.role}) logged in.")

            response_model = LoginResponse(
                accessToken=access_token,
                userId=user.userId,
                role=user.role,
                activeStudentId=user.activeStudentId,
            )
            return format_lambda_response(200, response_model.model_dump(by_alias=True, exclude_none=True), event=event)

        except ValidationError as e:
            _LOGGER.error(f"Validation error: {e}", exc_info=True)
            return create_error_response(
                ErrorCode.VALIDATION_ERROR, details=e.errors(include_url=False, include_context=False), event=event
            )
        except Exception as e:
            _LOGGER.error(f"Login error: {e}", exc_info=True)
            return create_error_response(ErrorCode.INTERNAL_ERROR, event=event)

    def handle(self, event: dict) -> dict:
        path = get_path(event)
        method = get_method(event)

        if method == "POST" and path == "/auth/login":
            return self._handle_login(event)

        return create_error_response(ErrorCode.RESOURCE_NOT_FOUND, "Auth route not found", event=event)


def auth_lambda_handler(event: dict, context: typing.Any) -> dict:
    _LOGGER.info("Auth lambda handler invoked.")

    try:
        handler = AuthApiHandler(
            users_table=UsersTable(get_users_table_name()),
            secrets_table=SecretsTable(get_secrets_table_name()),
            google_client_id=get_google_client_id(),
            jwt_wrapper=JwtWrapper(),
        )
        return handler.handle(event)
    except Exception as e:
        _LOGGER.critical(f"Critical error in auth_lambda_handler: {e}", exc_info=True)
        return create_error_response(ErrorCode.INTERNAL_ERROR)
