import json
import logging
import typing
from datetime import datetime, timezone

from pydantic import ValidationError

from college_tracker.collaboration.permissions import sanitize_permissions
from college_tracker.dynamodb.collaborator_links_table import CollaboratorLinksTable
from college_tracker.dynamodb.users_table import RoleTransitionError, UsersTable, normalize_email
from college_tracker.models.collaboration_models import (
    CollaboratorLinkListResponseModel,
    CollaboratorLinkModel,
    ContextUpdateRequestModel,
    InviteCollaboratorRequestModel,
    LinkStatusType,
    UpdateCollaboratorLinkRequestModel,
)
from college_tracker.models.user_models import UserModel
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
    get_users_table_name,
)
from college_tracker.utils.base_types import CollaboratorId, IsoTimestamp, LinkId, StudentId, UserId

_LOGGER = logging.getLogger(__name__)
_LOGGER.setLevel(logging.INFO)

VALID_LINK_STATUSES: tuple[LinkStatusType, ...] = ("pending", "active", "revoked")


def _now() -> IsoTimestamp:
    return IsoTimestamp(datetime.now(timezone.utc).isoformat())


class CollaborationApiHandler:
    """
    Routes for managing collaborator links: listing, inviting, editing and revoking them,
    plus the delegate's "which student am I looking at" context switch.
    """

    def __init__(self, users_table: UsersTable, collaborator_links_table: CollaboratorLinksTable):
        self.users_table = users_table
        self.collaborator_links_table = collaborator_links_table

    def _list_links_for_viewer(
        self,
        viewer: UserModel,
        statuses: typing.Optional[list[LinkStatusType]],
    ) -> list[CollaboratorLinkModel]:
        if viewer.is_delegate:
            return self.collaborator_links_table.get_links_for_collaborator(
                CollaboratorId(viewer.userId), statuses=statuses
            )
        return self.collaborator_links_table.get_links_for_student(StudentId(viewer.userId), statuses=statuses)

    def _links_response(self, links: list[CollaboratorLinkModel], event: dict) -> dict:
        response_model = CollaboratorLinkListResponseModel(links=links)
        return format_lambda_response(200, response_model.model_dump(by_alias=True, exclude_none=True), event=event)

    def _handle_get_links(self, event: dict, user_id: UserId) -> dict:
        viewer = self.users_table.get_user(user_id)
        if viewer is None:
            return create_error_response(ErrorCode.AUTHENTICATION_FAILED, "User not found", event=event)

        include_revoked = get_query_string_parameters(event).get("includeRevoked") == "true"
        statuses: typing.Optional[list[LinkStatusType]] = None if include_revoked else ["pending", "active"]
        return self._links_response(self._list_links_for_viewer(viewer, statuses), event)

    def _handle_get_students(self, event: dict, user_id: UserId) -> dict:
        viewer = self.users_table.get_user(user_id)
        if viewer is None:
            return create_error_response(ErrorCode.AUTHENTICATION_FAILED, "User not found", event=event)
        return self._links_response(self._list_links_for_viewer(viewer, ["active"]), event)

    def _handle_invite(self, event: dict, user_id: UserId) -> dict:
        inviter = self.users_table.get_user(user_id)
        if inviter is None:
            return create_error_response(ErrorCode.AUTHENTICATION_FAILED, "User not found", event=event)
        if inviter.role != "student":
            return create_error_response(
                ErrorCode.AUTHORIZATION_FAILED, "Only students can invite collaborators", event=event
            )

        request_data = InviteCollaboratorRequestModel.model_validate_json(event.get("body") or "{}")
        relationship = request_data.resolved_relationship
        permissions = sanitize_permissions(request_data.permissions, relationship)

        if not request_data.collaboratorEmail or not request_data.collaboratorEmail.strip():
            return create_error_response(ErrorCode.VALIDATION_ERROR, "Collaborator email is required", event=event)

        normalized_email = normalize_email(request_data.collaboratorEmail)
        if normalized_email == user_id:
            return create_error_response(ErrorCode.VALIDATION_ERROR, "Cannot invite yourself", event=event)

        collaborator = self.users_table.get_or_create_user(email=normalized_email, role=relationship)
        if collaborator.role != relationship:
            try:
                collaborator = self.users_table.promote_role(collaborator, relationship)
            except RoleTransitionError as rte:
                _LOGGER.warning(f"Invite from {user_id} rejected: {rte}")
                return create_error_response(
                    ErrorCode.VALIDATION_ERROR, f"Target user must be a {relationship}", event=event
                )

        link = self.collaborator_links_table.upsert_active_link(
            student_id=StudentId(user_id),
            collaborator_id=CollaboratorId(collaborator.userId),
            relationship=relationship,
            permissions=permissions,
            created_by=user_id,
            note=request_data.note,
        )
        _LOGGER.info(f"Student {user_id} invited {collaborator.userId} as {relationship} (link {link.linkId}).")
        return format_lambda_response(200, link.model_dump(by_alias=True, exclude_none=True), event=event)

    def _handle_update_link(self, event: dict, user_id: UserId, link_id: LinkId) -> dict:
        link = self.collaborator_links_table.get_link_by_id(link_id)
        if link is None:
            return create_error_response(ErrorCode.RESOURCE_NOT_FOUND, "Link not found", event=event)

        is_owner = link.studentId == user_id
        is_collaborator = link.collaboratorId == user_id
        if not is_owner and not is_collaborator:
            _LOGGER.warning(f"Forbidden: {user_id} tried to update link {link_id} they are not a party to.")
            return create_error_response(ErrorCode.AUTHORIZATION_FAILED, "Forbidden", event=event)

        request_data = UpdateCollaboratorLinkRequestModel.model_validate_json(event.get("body") or "{}")
        changes: dict[str, typing.Any] = {}

        if request_data.permissions is not None and is_owner:
            changes["permissions"] = sanitize_permissions(request_data.permissions, link.relationship)

        if request_data.note is not None and is_owner:
            changes["note"] = request_data.note

        if request_data.status:
            if request_data.status not in VALID_LINK_STATUSES:
                return create_error_response(ErrorCode.VALIDATION_ERROR, "Invalid status", event=event)
            changes["status"] = request_data.status
            if request_data.status == "active":
                changes["acceptedAt"] = _now()

        if is_collaborator:
            changes["lastSeenAt"] = _now()

        saved = self.collaborator_links_table.save_link(link.model_copy(update=changes))
        return format_lambda_response(200, saved.model_dump(by_alias=True, exclude_none=True), event=event)

    def _handle_revoke_link(self, event: dict, user_id: UserId, link_id: LinkId) -> dict:
        link = self.collaborator_links_table.get_link_by_id(link_id)
        if link is None:
            return create_error_response(ErrorCode.RESOURCE_NOT_FOUND, "Link not found", event=event)

        if link.studentId != user_id and link.collaboratorId != user_id:
            _LOGGER.warning(f"Forbidden: {user_id} tried to revoke link {link_id} they are not a party to.")
            return create_error_response(ErrorCode.AUTHORIZATION_FAILED, "Forbidden", event=event)

        self.collaborator_links_table.save_link(link.model_copy(update={"status": "revoked"}))
        _LOGGER.info(f"Link {link_id} revoked by {user_id}.")
        return format_lambda_response(200, {"success": True}, event=event)

    def _handle_update_context(self, event: dict, user_id: UserId) -> dict:
        request_data = ContextUpdateRequestModel.model_validate_json(event.get("body") or "{}")

        user = self.users_table.get_user(user_id)
        if user is None:
            return create_error_response(ErrorCode.RESOURCE_NOT_FOUND, "User not found", event=event)
        if not user.is_delegate:
            return create_error_response(
                ErrorCode.AUTHORIZATION_FAILED, "Only collaborators can change context", event=event
            )

        if request_data.studentId is None:
            self.users_table.set_active_student(user.userId, None)
            return format_lambda_response(200, {"success": True}, event=event)

        link = self.collaborator_links_table.get_active_link(
            student_id=request_data.studentId,
            collaborator_id=CollaboratorId(user.userId),
        )
        if link is None:
            return create_error_response(ErrorCode.RESOURCE_NOT_FOUND, "Collaboration link not found", event=event)

        self.users_table.set_active_student(user.userId, link.studentId)
        return format_lambda_response(200, {"success": True}, event=event)

    def handle(self, event: dict) -> dict:
        user_id = get_user_id_from_event(event)
        if not user_id:
            return create_error_response(ErrorCode.AUTHENTICATION_FAILED, event=event)

        http_method = get_method(event).upper()
        path = get_path(event)
        path_parts = path.strip("/").split("/")

        _LOGGER.info(f"CollaborationApiHandler: {http_method} {path} for user: {user_id}")

        try:
            if path == "/collaboration/links":
                if http_method == "GET":
                    return self._handle_get_links(event, user_id)
                if http_method == "POST":
                    return self._handle_invite(event, user_id)
                return create_error_response(ErrorCode.METHOD_NOT_ALLOWED, event=event)

            elif len(path_parts) == 3 and path_parts[:2] == ["collaboration", "links"]:
                # Path: /collaboration/links/{linkId}
                link_id = LinkId(path_parts[2])
                if http_method == "PATCH":
                    return self._handle_update_link(event, user_id, link_id)
                if http_method == "DELETE":
                    return self._handle_revoke_link(event, user_id, link_id)
                return create_error_response(ErrorCode.METHOD_NOT_ALLOWED, event=event)

            elif path == "/collaboration/students":
                if http_method == "GET":
                    return self._handle_get_students(event, user_id)
                return create_error_response(ErrorCode.METHOD_NOT_ALLOWED, event=event)

            elif path == "/collaboration/context":
                if http_method == "PATCH":
                    return self._handle_update_context(event, user_id)
                return create_error_response(ErrorCode.METHOD_NOT_ALLOWED, event=event)

            else:
                _LOGGER.warning(f"Unsupported path or method for Collaboration: {http_method} {path}")
                return create_error_response(ErrorCode.RESOURCE_NOT_FOUND, event=event)

        except ValidationError as e:
            _LOGGER.error(f"Collaboration request body validation error: {e.errors()}")
            return create_error_response(
                ErrorCode.VALIDATION_ERROR, details=e.errors(include_url=False, include_context=False), event=event
            )
        except json.JSONDecodeError:
            _LOGGER.error("Collaboration request body is not valid JSON.", exc_info=True)
            return create_error_response(ErrorCode.VALIDATION_ERROR, event=event)
        except Exception as e:
            _LOGGER.error(f"Unexpected error in CollaborationApiHandler for user {user_id}: {str(e)}", exc_info=True)
            return create_error_response(ErrorCode.INTERNAL_ERROR, event=event)


def collaboration_lambda_handler(event: dict[str, typing.Any], context: typing.Any) -> dict[str, typing.Any]:
    _LOGGER.debug("Global collaboration_lambda_handler received event.")

    try:
        api_handler = CollaborationApiHandler(
            users_table=UsersTable(get_users_table_name()),
            collaborator_links_table=CollaboratorLinksTable(get_collaborator_links_table_name()),
        )
        return api_handler.handle(event)

    except ValueError as ve:
        _LOGGER.critical(f"Configuration error in collaboration_lambda_handler: {str(ve)}", exc_info=True)
        return create_error_response(ErrorCode.INTERNAL_ERROR, "Server configuration error")
    except Exception as e:
        _LOGGER.critical(f"Error during CollaborationApiHandler: {str(e)}", exc_info=True)
        return create_error_response(ErrorCode.INTERNAL_ERROR)
