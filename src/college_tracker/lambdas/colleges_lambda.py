import json
import logging
import typing
import uuid
from datetime import datetime, timedelta, timezone

from pydantic import ValidationError

from college_tracker.collaboration.permissions import has_permission
from college_tracker.collaboration.student_context import (
    AuthorizationError,
    StudentContextResolver,
    StudentContextResult,
)
from college_tracker.dynamodb.collaborator_links_table import CollaboratorLinksTable
from college_tracker.dynamodb.colleges_table import CollegesTable
from college_tracker.dynamodb.essays_table import EssaysTable
from college_tracker.dynamodb.tasks_table import TasksTable
from college_tracker.dynamodb.users_table import UsersTable
from college_tracker.models.collaboration_models import PermissionKey
from college_tracker.models.college_models import (
    UPDATABLE_SECTIONS,
    CollegeItemModel,
    CreateCollegeRequestModel,
    PortalModel,
    UpdateCollegeRequestModel,
)
from college_tracker.models.task_models import TaskItemModel
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
    get_colleges_table_name,
    get_essays_table_name,
    get_tasks_table_name,
    get_users_table_name,
)
from college_tracker.utils.base_types import CollegeId, IsoTimestamp, TaskId, UserId

_LOGGER = logging.getLogger(__name__)
_LOGGER.setLevel(logging.INFO)

# (title template, label, days before the deadline, priority)
STARTER_TASKS: tuple[tuple[str, str, int, str], ...] = (
    ("Complete main essay for {name}", "Essay", 7, "high"),
    ("Request teacher recommendations for {name}", "Rec", 14, "high"),
    ("Submit application fee for {name}", "Fees", 0, "medium"),
)


def _now() -> IsoTimestamp:
    return IsoTimestamp(datetime.now(timezone.utc).isoformat())


def build_starter_tasks(college: CollegeItemModel, deadline: datetime, created_by: UserId) -> list[TaskItemModel]:
    timestamp = _now()
    return [
        TaskItemModel(
            userId=college.userId,
            taskId=TaskId(str(uuid.uuid4())),
            title=title.format(name=college.name),
            label=label,
            dueDate=IsoTimestamp((deadline - timedelta(days=days_before)).isoformat()),
            priority=priority,
            collegeId=college.collegeId,
            createdBy=created_by,
            createdAt=timestamp,
            updatedAt=timestamp,
        )
        for title, label, days_before, priority in STARTER_TASKS
    ]


class CollegesApiHandler:
    def __init__(
        self,
        colleges_table: CollegesTable,
        tasks_table: TasksTable,
        essays_table: EssaysTable,
        student_context_resolver: StudentContextResolver,
    ):
        self.colleges_table = colleges_table
        self.tasks_table = tasks_table
        self.essays_table = essays_table
        self.student_context_resolver = student_context_resolver

    def _resolve(self, event: dict, user_id: UserId, required_permission: PermissionKey) -> StudentContextResult:
        return self.student_context_resolver.resolve(
            actor_user_id=user_id,
            student_id=get_query_string_parameters(event).get("studentId"),
            required_permission=required_permission,
        )

    def _serialize(self, college: CollegeItemModel, context: StudentContextResult) -> dict[str, typing.Any]:
        # Financial aid details stay hidden from delegates without viewFinancial
        exclude = None
        if context.collaborator_link is not None and not has_permission(context.collaborator_link, "viewFinancial"):
            exclude = {"financialAid"}
        return college.model_dump(by_alias=True, exclude_none=True, exclude=exclude)

    def _handle_get_colleges(self, event: dict, user_id: UserId) -> dict:
        context = self._resolve(event, user_id, "viewTasks")
        colleges = self.colleges_table.get_colleges_for_user(context.target_user_id)
        response_body = {"colleges": [self._serialize(college, context) for college in colleges]}
        return format_lambda_response(200, response_body, event=event)

    def _handle_create_college(self, event: dict, user_id: UserId) -> dict:
        context = self._resolve(event, user_id, "manageTasks")

        raw_body = event.get("body")
        if not raw_body:
            return create_error_response(ErrorCode.VALIDATION_ERROR, "Request body is missing.", event=event)

        try:
            request_data = CreateCollegeRequestModel.model_validate_json(raw_body)
        except ValidationError as e:
            _LOGGER.error(f"College create request body validation error: {e.errors()}")
            return create_error_response(
                ErrorCode.VALIDATION_ERROR, details=e.errors(include_url=False, include_context=False), event=event
            )

        deadline = request_data.deadline
        if deadline.tzinfo is None:
            deadline = deadline.replace(tzinfo=timezone.utc)

        timestamp = _now()
        college = CollegeItemModel(
            userId=context.target_user_id,
            collegeId=CollegeId(str(uuid.uuid4())),
            name=request_data.name,
            plan=request_data.plan,
            deadline=IsoTimestamp(deadline.isoformat()),
            intake=request_data.intake,
            region=request_data.region,
            portal=PortalModel(url=request_data.portalUrl),
            requirements=request_data.requirements,
            requirementStatus=request_data.requirementStatus,
            notes=request_data.notes,
            createdBy=user_id,
            createdAt=timestamp,
            updatedAt=timestamp,
        )
        saved = self.colleges_table.save_college(college)

        for task in build_starter_tasks(saved, deadline, user_id):
            self.tasks_table.save_task(task)

        _LOGGER.info(f"User {user_id} added college {saved.collegeId} for student {context.target_user_id}")
        return format_lambda_response(201, self._serialize(saved, context), event=event)

    def _handle_get_college(self, event: dict, user_id: UserId, college_id: CollegeId) -> dict:
        context = self._resolve(event, user_id, "viewTasks")
        college = self.colleges_table.get_college(context.target_user_id, college_id)
        if college is None:
            return create_error_response(ErrorCode.RESOURCE_NOT_FOUND, "College not found", event=event)
        return format_lambda_response(200, self._serialize(college, context), event=event)

    def _handle_update_college(self, event: dict, user_id: UserId, college_id: CollegeId) -> dict:
        context = self._resolve(event, user_id, "manageTasks")

        college = self.colleges_table.get_college(context.target_user_id, college_id)
        if college is None:
            return create_error_response(ErrorCode.RESOURCE_NOT_FOUND, "College not found", event=event)

        raw_body = event.get("body")
        if not raw_body:
            return create_error_response(ErrorCode.VALIDATION_ERROR, "Request body is missing.", event=event)

        try:
            updates = UpdateCollegeRequestModel.model_validate_json(raw_body)
            merged = college.model_dump()
            for section in UPDATABLE_SECTIONS:
                patch = getattr(updates, section)
                if patch is not None:
                    merged[section] = {**(merged.get(section) or {}), **patch}
            if updates.notes is not None:
                merged["notes"] = updates.notes
            merged["updatedAt"] = _now()
            updated_college = CollegeItemModel.model_validate(merged)
        except ValidationError as e:
            _LOGGER.error(f"College update request body validation error: {e.errors()}")
            return create_error_response(
                ErrorCode.VALIDATION_ERROR, details=e.errors(include_url=False, include_context=False), event=event
            )

        saved = self.colleges_table.save_college(updated_college)
        return format_lambda_response(200, self._serialize(saved, context), event=event)

    def _handle_delete_college(self, event: dict, user_id: UserId, college_id: CollegeId) -> dict:
        context = self._resolve(event, user_id, "manageTasks")
        student_id = context.target_user_id

        if self.colleges_table.get_college(student_id, college_id) is None:
            return create_error_response(ErrorCode.RESOURCE_NOT_FOUND, "College not found", event=event)

        removed_tasks = self.tasks_table.delete_tasks_for_college(student_id, college_id)
        removed_essays = self.essays_table.delete_essays_for_college(student_id, college_id)
        self.colleges_table.delete_college(student_id, college_id)
        _LOGGER.info(
            f"User {user_id} deleted college {college_id} for student {student_id} "
            f"({removed_tasks} tasks, {removed_essays} essays)"
        )
        return format_lambda_response(200, {"success": True}, event=event)

    def handle(self, event: dict) -> dict:
        user_id = get_user_id_from_event(event)
        if not user_id:
            return create_error_response(ErrorCode.AUTHENTICATION_FAILED, event=event)

        http_method = get_method(event).upper()
        path = get_path(event)
        path_parts = path.strip("/").split("/")

        _LOGGER.info(f"CollegesApiHandler: {http_method} {path} for user: {user_id}")

        try:
            if path == "/colleges":
                if http_method == "GET":
                    return self._handle_get_colleges(event, user_id)
                if http_method == "POST":
                    return self._handle_create_college(event, user_id)
                return create_error_response(ErrorCode.METHOD_NOT_ALLOWED, event=event)

            elif len(path_parts) == 2 and path_parts[0] == "colleges":
                # Path: /colleges/{collegeId}
                college_id = CollegeId(path_parts[1])
                if http_method == "GET":
                    return self._handle_get_college(event, user_id, college_id)
                if http_method == "PATCH":
                    return self._handle_update_college(event, user_id, college_id)
                if http_method == "DELETE":
                    return self._handle_delete_college(event, user_id, college_id)
                return create_error_response(ErrorCode.METHOD_NOT_ALLOWED, event=event)

            else:
                _LOGGER.warning(f"Unsupported path or method for Colleges: {http_method} {path}")
                return create_error_response(ErrorCode.RESOURCE_NOT_FOUND, event=event)

        except AuthorizationError as ae:
            _LOGGER.warning(f"Authorization failed for user {user_id} on {http_method} {path}: {ae.message}")
            return ae.to_response(event)
        except json.JSONDecodeError:
            _LOGGER.error("Colleges request body is not valid JSON.", exc_info=True)
            return create_error_response(ErrorCode.VALIDATION_ERROR, event=event)
        except Exception as e:
            _LOGGER.error(f"Unexpected error in CollegesApiHandler for user {user_id}: {str(e)}", exc_info=True)
            return create_error_response(ErrorCode.INTERNAL_ERROR, event=event)


def colleges_lambda_handler(event: dict[str, typing.Any], context: typing.Any) -> dict[str, typing.Any]:
    _LOGGER.debug("Global colleges_lambda_handler received event.")

    try:
        users_table = UsersTable(get_users_table_name())
        collaborator_links_table = CollaboratorLinksTable(get_collaborator_links_table_name())
        api_handler = CollegesApiHandler(
            colleges_table=CollegesTable(get_colleges_table_name()),
            tasks_table=TasksTable(get_tasks_table_name()),
            essays_table=EssaysTable(get_essays_table_name()),
            student_context_resolver=StudentContextResolver(
                users_table=users_table,
                collaborator_links_table=collaborator_links_table,
            ),
        )
        return api_handler.handle(event)

    except ValueError as ve:
        _LOGGER.critical(f"Configuration error in colleges_lambda_handler: {str(ve)}", exc_info=True)
        return create_error_response(ErrorCode.INTERNAL_ERROR, "Server configuration error")
    except Exception as e:
        _LOGGER.critical(f"Error during CollegesApiHandler: {str(e)}", exc_info=True)
        return create_error_response(ErrorCode.INTERNAL_ERROR)
