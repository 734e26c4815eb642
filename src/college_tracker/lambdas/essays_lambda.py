import json
import logging
import typing
import uuid
from datetime import datetime, timezone

from pydantic import ValidationError

from college_tracker.collaboration.student_context import (
    AuthorizationError,
    StudentContextResolver,
)
from college_tracker.dynamodb.collaborator_links_table import CollaboratorLinksTable
from college_tracker.dynamodb.essays_table import EssaysTable
from college_tracker.dynamodb.secrets_table import SecretsTable
from college_tracker.dynamodb.users_table import UsersTable
from college_tracker.models.essay_models import (
    ESSAY_ASSIST_MODES,
    ApproveRewriteRequestModel,
    CreateEssayRequestModel,
    EssayAssistRequestModel,
    EssayItemModel,
    EssayListResponseModel,
    RewriteApprovalModel,
    UpdateEssayRequestModel,
    count_words,
)
from college_tracker.utils.apig_utils import (
    ErrorCode,
    create_error_response,
    format_lambda_response,
    get_method,
    get_path,
    get_query_string_parameters,
    get_user_id_from_event,
)
from college_tracker.utils.aws_env_vars import (
    get_collaborator_links_table_name,
    get_essays_table_name,
    get_secrets_table_name,
    get_users_table_name,
)
from college_tracker.utils.base_types import EssayId, IsoTimestamp, UserId
from college_tracker.utils.chatbot_utils import ChatBotApiError, ChatBotWrapper
from college_tracker.utils.input_validator import InputValidator, SuspiciousInputError

_LOGGER = logging.getLogger(__name__)
_LOGGER.setLevel(logging.INFO)


def _now() -> IsoTimestamp:
    return IsoTimestamp(datetime.now(timezone.utc).isoformat())


class EssaysApiHandler:
    def __init__(
        self,
        essays_table: EssaysTable,
        student_context_resolver: StudentContextResolver,
        secrets_table: SecretsTable,
        chatbot_wrapper: ChatBotWrapper,
    ):
        self.essays_table = essays_table
        self.student_context_resolver = student_context_resolver
        self.secrets_table = secrets_table
        self.chatbot_wrapper = chatbot_wrapper

    def _handle_get_essays(self, event: dict, user_id: UserId) -> dict:
        context = self.student_context_resolver.resolve(
            actor_user_id=user_id,
            student_id=get_query_string_parameters(event).get("studentId"),
            required_permission="viewEssays",
        )
        essays = self.essays_table.get_essays_for_user(context.target_user_id)
        response_model = EssayListResponseModel(essays=essays)
        return format_lambda_response(200, response_model.model_dump(by_alias=True, exclude_none=True), event=event)

    def _handle_create_essay(self, event: dict, user_id: UserId) -> dict:
        context = self.student_context_resolver.resolve(
            actor_user_id=user_id,
            student_id=get_query_string_parameters(event).get("studentId"),
            required_permission="editEssays",
        )

        raw_body = event.get("body")
        if not raw_body:
            return create_error_response(ErrorCode.VALIDATION_ERROR, "Request body is missing.", event=event)

        try:
            request_data = CreateEssayRequestModel.model_validate_json(raw_body)
        except ValidationError as e:
            _LOGGER.error(f"Essay create request body validation error: {e.errors()}")
            return create_error_response(
                ErrorCode.VALIDATION_ERROR, details=e.errors(include_url=False, include_context=False), event=event
            )

        timestamp = _now()
        essay = EssayItemModel(
            userId=context.target_user_id,
            essayId=EssayId(str(uuid.uuid4())),
            title=request_data.title,
            prompt=request_data.prompt,
            content=request_data.content,
            wordCount=count_words(request_data.content),
            collegeId=request_data.collegeId,
            collegeName=request_data.collegeName,
            wordLimit=request_data.wordLimit,
            createdBy=user_id,
            lastEditedBy=user_id,
            createdAt=timestamp,
            updatedAt=timestamp,
        )
        saved = self.essays_table.save_essay(essay)
        return format_lambda_response(201, saved.model_dump(by_alias=True, exclude_none=True), event=event)

    def _handle_update_essay(self, event: dict, user_id: UserId, essay_id: EssayId) -> dict:
        context = self.student_context_resolver.resolve(
            actor_user_id=user_id,
            student_id=get_query_string_parameters(event).get("studentId"),
            required_permission="editEssays",
        )

        essay = self.essays_table.get_essay(context.target_user_id, essay_id)
        if essay is None:
            return create_error_response(ErrorCode.RESOURCE_NOT_FOUND, "Essay not found", event=event)

        raw_body = event.get("body")
        if not raw_body:
            return create_error_response(ErrorCode.VALIDATION_ERROR, "Request body is missing.", event=event)

        try:
            updates = UpdateEssayRequestModel.model_validate_json(raw_body)
            changes = updates.model_dump(exclude_unset=True)
            if "content" in changes:
                changes["wordCount"] = count_words(changes["content"])
            changes["lastEditedBy"] = user_id
            changes["updatedAt"] = _now()
            updated_essay = EssayItemModel.model_validate({**essay.model_dump(), **changes})
        except ValidationError as e:
            _LOGGER.error(f"Essay update request body validation error: {e.errors()}")
            return create_error_response(
                ErrorCode.VALIDATION_ERROR, details=e.errors(include_url=False, include_context=False), event=event
            )

        saved = self.essays_table.save_essay(updated_essay)
        return format_lambda_response(200, saved.model_dump(by_alias=True, exclude_none=True), event=event)

    def _handle_assist_essay(self, event: dict, user_id: UserId, essay_id: EssayId) -> dict:
        """
        Runs one AI pass over an essay. "critique" only needs viewEssays; "rewrite" and
        "coach" produce text meant to change the draft, so they need editEssays. Nothing
        is written back to the essay here; a rewrite is applied through /rewrites.
        """
        try:
            request_data = EssayAssistRequestModel.model_validate_json(event.get("body") or "{}")
        except ValidationError as e:
            _LOGGER.error(f"Essay assist request body validation error: {e.errors()}")
            return create_error_response(
                ErrorCode.VALIDATION_ERROR, details=e.errors(include_url=False, include_context=False), event=event
            )

        mode = request_data.mode
        context = self.student_context_resolver.resolve(
            actor_user_id=user_id,
            student_id=get_query_string_parameters(event).get("studentId"),
            required_permission="viewEssays" if mode == "critique" else "editEssays",
        )

        if mode not in ESSAY_ASSIST_MODES:
            return create_error_response(ErrorCode.VALIDATION_ERROR, "Invalid mode", event=event)
        if mode == "rewrite" and not request_data.instruction:
            return create_error_response(ErrorCode.VALIDATION_ERROR, "Rewrite requires an instruction", event=event)

        essay = self.essays_table.get_essay(context.target_user_id, essay_id)
        if essay is None:
            return create_error_response(ErrorCode.RESOURCE_NOT_FOUND, "Essay not found", event=event)
        if not essay.content.strip():
            return create_error_response(ErrorCode.VALIDATION_ERROR, f"Essay has no content to {mode}", event=event)

        try:
            InputValidator.validate_essay_input(
                title=essay.title,
                content=essay.content,
                prompt=essay.prompt,
                college_name=essay.collegeName,
            )
            if request_data.instruction:
                InputValidator.validate_field(request_data.instruction, "instruction")
        except SuspiciousInputError as e:
            _LOGGER.warning(
                f"Essay {essay_id} rejected before {mode}: {e}. "
                f"Content: {InputValidator.sanitize_for_logging(essay.content)}"
            )
            return create_error_response(ErrorCode.VALIDATION_ERROR, str(e), event=event)

        chatbot_api_key = self.secrets_table.get_chatbot_api_key()
        if mode == "rewrite":
            rewritten = self.chatbot_wrapper.call_essay_rewrite_api(
                chatbot_api_key=chatbot_api_key,
                content=essay.content,
                instruction=typing.cast(str, request_data.instruction),
                prompt=essay.prompt,
                word_limit=essay.wordLimit,
            )
            return format_lambda_response(200, {"rewritten": rewritten}, event=event)

        if mode == "coach":
            coaching = self.chatbot_wrapper.call_essay_coach_api(
                chatbot_api_key=chatbot_api_key,
                content=essay.content,
                prompt=essay.prompt,
                word_limit=essay.wordLimit,
            )
            return format_lambda_response(200, {"coaching": coaching}, event=event)

        critique = self.chatbot_wrapper.call_essay_critique_api(
            chatbot_api_key=chatbot_api_key,
            title=essay.title,
            content=essay.content,
            prompt=essay.prompt,
            college_name=essay.collegeName,
            word_limit=essay.wordLimit,
        )
        return format_lambda_response(200, critique.model_dump(by_alias=True, exclude_none=True), event=event)

    def _handle_approve_rewrite(self, event: dict, user_id: UserId, essay_id: EssayId) -> dict:
        context = self.student_context_resolver.resolve(
            actor_user_id=user_id,
            student_id=get_query_string_parameters(event).get("studentId"),
            required_permission="approveAiSuggestions",
        )

        try:
            request_data = ApproveRewriteRequestModel.model_validate_json(event.get("body") or "{}")
        except ValidationError as e:
            _LOGGER.error(f"Rewrite approval request body validation error: {e.errors()}")
            return create_error_response(
                ErrorCode.VALIDATION_ERROR,
                "Missing rewritten content",
                details=e.errors(include_url=False, include_context=False),
                event=event,
            )

        essay = self.essays_table.get_essay(context.target_user_id, essay_id)
        if essay is None:
            return create_error_response(ErrorCode.RESOURCE_NOT_FOUND, "Essay not found", event=event)

        timestamp = _now()
        approval = RewriteApprovalModel(
            instruction=request_data.instruction,
            content=request_data.content,
            previousContent=essay.content,
            approvedBy=user_id,
            approvedByName=context.viewer.name,
            approvedAt=timestamp,
        )
        saved = self.essays_table.save_essay(
            essay.model_copy(
                update={
                    "content": request_data.content,
                    "wordCount": count_words(request_data.content),
                    "rewriteApprovals": [*essay.rewriteApprovals, approval],
                    "lastEditedBy": user_id,
                    "updatedAt": timestamp,
                }
            )
        )
        _LOGGER.info(f"User {user_id} approved a rewrite of essay {essay_id} for student {context.target_user_id}")
        return format_lambda_response(200, saved.model_dump(by_alias=True, exclude_none=True), event=event)

    def handle(self, event: dict) -> dict:
        user_id = get_user_id_from_event(event)
        if not user_id:
            return create_error_response(ErrorCode.AUTHENTICATION_FAILED, event=event)

        http_method = get_method(event).upper()
        path = get_path(event)
        path_parts = path.strip("/").split("/")

        _LOGGER.info(f"EssaysApiHandler: {http_method} {path} for user: {user_id}")

        try:
            if path == "/essays":
                if http_method == "GET":
                    return self._handle_get_essays(event, user_id)
                if http_method == "POST":
                    return self._handle_create_essay(event, user_id)
                return create_error_response(ErrorCode.METHOD_NOT_ALLOWED, event=event)

            elif len(path_parts) == 2 and path_parts[0] == "essays":
                # Path: /essays/{essayId}
                if http_method == "PUT":
                    return self._handle_update_essay(event, user_id, EssayId(path_parts[1]))
                return create_error_response(ErrorCode.METHOD_NOT_ALLOWED, event=event)

            elif len(path_parts) == 3 and path_parts[0] == "essays" and path_parts[2] == "critique":
                # Path: /essays/{essayId}/critique
                if http_method == "POST":
                    return self._handle_assist_essay(event, user_id, EssayId(path_parts[1]))
                return create_error_response(ErrorCode.METHOD_NOT_ALLOWED, event=event)

            elif len(path_parts) == 3 and path_parts[0] == "essays" and path_parts[2] == "rewrites":
                # Path: /essays/{essayId}/rewrites
                if http_method == "POST":
                    return self._handle_approve_rewrite(event, user_id, EssayId(path_parts[1]))
                return create_error_response(ErrorCode.METHOD_NOT_ALLOWED, event=event)

            else:
                _LOGGER.warning(f"Unsupported path or method for Essays: {http_method} {path}")
                return create_error_response(ErrorCode.RESOURCE_NOT_FOUND, event=event)

        except AuthorizationError as ae:
            _LOGGER.warning(f"Authorization failed for user {user_id} on {http_method} {path}: {ae.message}")
            return ae.to_response(event)
        except ChatBotApiError as ce:
            _LOGGER.error(f"AI Service communication error for essay request: {str(ce)}", exc_info=True)
            return create_error_response(ErrorCode.AI_SERVICE_UNAVAILABLE, event=event)
        except json.JSONDecodeError:
            _LOGGER.error("Essays request body is not valid JSON.", exc_info=True)
            return create_error_response(ErrorCode.VALIDATION_ERROR, event=event)
        except Exception as e:
            _LOGGER.error(f"Unexpected error in EssaysApiHandler for user {user_id}: {str(e)}", exc_info=True)
            return create_error_response(ErrorCode.INTERNAL_ERROR, event=event)


def essays_lambda_handler(event: dict[str, typing.Any], context: typing.Any) -> dict[str, typing.Any]:
    _LOGGER.debug("Global essays_lambda_handler received event.")

    try:
        users_table = UsersTable(get_users_table_name())
        collaborator_links_table = CollaboratorLinksTable(get_collaborator_links_table_name())
        api_handler = EssaysApiHandler(
            essays_table=EssaysTable(get_essays_table_name()),
            student_context_resolver=StudentContextResolver(
                users_table=users_table,
                collaborator_links_table=collaborator_links_table,
            ),
            secrets_table=SecretsTable(get_secrets_table_name()),
            chatbot_wrapper=ChatBotWrapper(),
        )
        return api_handler.handle(event)

    except ValueError as ve:
        _LOGGER.critical(f"Configuration error in essays_lambda_handler: {str(ve)}", exc_info=True)
        return create_error_response(ErrorCode.INTERNAL_ERROR, "Server configuration error")
    except Exception as e:
        _LOGGER.critical(f"Error during EssaysApiHandler: {str(e)}", exc_info=True)
        return create_error_response(ErrorCode.INTERNAL_ERROR)
