import logging
import typing

from pydantic import BaseModel

from college_tracker.collaboration.permissions import has_permission
from college_tracker.dynamodb.collaborator_links_table import CollaboratorLinksTable
from college_tracker.dynamodb.users_table import UsersTable
from college_tracker.models.collaboration_models import CollaboratorLinkModel, PermissionKey
from college_tracker.models.user_models import UserModel
from college_tracker.utils.apig_utils import ErrorCode, create_error_response
from college_tracker.utils.base_types import StudentId, UserId

_LOGGER = logging.getLogger(__name__)
_LOGGER.setLevel(logging.INFO)

NO_SHARED_STUDENTS_MESSAGE = (
    "No shared students available yet. Ask a student to grant you access from their Collaboration settings."
)


class AuthorizationError(Exception):
    def __init__(self, message: str, status_code: int = 403) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    def to_response(self, event: typing.Optional[dict] = None) -> dict:
        """Translates the error into the wire response, keeping status and message verbatim."""
        return create_error_response(ErrorCode.from_status_code(self.status_code), self.message, event=event)


class StudentContextResult(BaseModel):
    viewer: UserModel
    target_user_id: StudentId
    collaborator_link: typing.Optional[CollaboratorLinkModel] = None


class StudentContextResolver:
    """
    Decides which student's data an actor may act on for a single request.

    Precedence: explicit student id, then the actor themselves (students only), then the
    delegate's remembered active student, then the delegate's most recently used link.
    The remembered active student is only a default: delegated access is always
    re-checked against the current state of the link.
    """

    def __init__(self, users_table: UsersTable, collaborator_links_table: CollaboratorLinksTable):
        self.users_table = users_table
        self.collaborator_links_table = collaborator_links_table

    def _candidate_student_id(
        self,
        viewer: UserModel,
        requested_student_id: typing.Optional[str],
        fallback_to_self: bool,
    ) -> typing.Optional[StudentId]:
        if requested_student_id:
            return StudentId(requested_student_id)
        if viewer.role == "student" and fallback_to_self:
            return StudentId(viewer.userId)
        return viewer.activeStudentId

    def _auto_select_link(
        self,
        viewer: UserModel,
        required_permission: typing.Optional[PermissionKey],
    ) -> typing.Optional[CollaboratorLinkModel]:
        link = self.collaborator_links_table.find_most_recent_active_link(
            collaborator_id=viewer.userId,
            required_permission=required_permission,
        )
        if link is None:
            return None

        self.users_table.set_active_student(viewer.userId, link.studentId)
        viewer.activeStudentId = link.studentId
        _LOGGER.info(f"Auto-selected student {link.studentId} for delegate {viewer.userId}.")
        return link

    def resolve(
        self,
        actor_user_id: UserId,
        student_id: typing.Optional[str] = None,
        required_permission: typing.Optional[PermissionKey] = None,
        fallback_to_self: bool = True,
    ) -> StudentContextResult:
        """
        :raises AuthorizationError: 401 for an unknown actor, 400 when no student can be
            selected, 403 when delegation is not allowed or lacks the required permission.
        """
        viewer = self.users_table.get_user(actor_user_id)
        if viewer is None:
            raise AuthorizationError("User not found", 401)

        # Students always default to themselves
        if viewer.role == "student" and not viewer.activeStudentId:
            self.users_table.set_active_student(viewer.userId, StudentId(viewer.userId))
            viewer.activeStudentId = StudentId(viewer.userId)

        effective_student_id = self._candidate_student_id(viewer, student_id, fallback_to_self)
        collaborator_link: typing.Optional[CollaboratorLinkModel] = None

        if not effective_student_id:
            if not viewer.is_delegate:
                raise AuthorizationError("Select a student to continue", 400)
            collaborator_link = self._auto_select_link(viewer, required_permission)
            if collaborator_link is None:
                raise AuthorizationError(NO_SHARED_STUDENTS_MESSAGE, 400)
            effective_student_id = collaborator_link.studentId

        if effective_student_id == viewer.userId:
            return StudentContextResult(viewer=viewer, target_user_id=effective_student_id)

        if not viewer.is_delegate:
            _LOGGER.warning(f"Forbidden: {viewer.role} {viewer.userId} tried to act for {effective_student_id}.")
            raise AuthorizationError("Not allowed to act on behalf of another user", 403)

        if collaborator_link is None:
            collaborator_link = self.collaborator_links_table.get_active_link(
                student_id=effective_student_id,
                collaborator_id=viewer.userId,
            )

        if collaborator_link is None:
            collaborator_link = self._auto_select_link(viewer, required_permission)
            if collaborator_link is not None:
                effective_student_id = collaborator_link.studentId

        if collaborator_link is None:
            _LOGGER.warning(f"Forbidden: no active link from {effective_student_id} to {viewer.userId}.")
            raise AuthorizationError("Collaboration link not found", 403)

        if required_permission and not has_permission(collaborator_link, required_permission):
            _LOGGER.warning(
                f"Forbidden: delegate {viewer.userId} lacks '{required_permission}' for {effective_student_id}."
            )
            raise AuthorizationError("Missing required permission", 403)

        return StudentContextResult(
            viewer=viewer,
            target_user_id=effective_student_id,
            collaborator_link=collaborator_link,
        )
