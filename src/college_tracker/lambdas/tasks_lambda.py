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
from college_tracker.dynamodb.tasks_table import TasksTable
from college_tracker.dynamodb.users_table import UsersTable
from college_tracker.models.task_models import (
    CreateTaskRequestModel,
    TaskItemModel,
    TaskListResponseModel,
    UpdateTaskRequestModel,
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
    get_tasks_table_name,
    get_users_table_name,
)
from college_tracker.utils.base_types import IsoTimestamp, TaskId, UserId

_LOGGER = logging.getLogger(__name__)
_LOGGER.setLevel(logging.INFO)


def _now() -> IsoTimestamp:
    return IsoTimestamp(datetime.now(timezone.utc).isoformat())


class TasksApiHandler:
    def __init__(self, tasks_table: TasksTable, student_context_resolver: StudentContextResolver):
        self.tasks_table = tasks_table
        self.student_context_resolver = student_context_resolver

    def _handle_get_tasks(self, event: dict, user_id: UserId) -> dict:
        query_params = get_query_string_parameters(event)
        context = self.student_context_resolver.resolve(
            actor_user_id=user_id,
            student_id=query_params.get("studentId"),
            required_permission="viewTasks",
        )

        status_filter = query_params.get("status")
        completed: typing.Optional[bool] = None
        if status_filter == "completed":
            completed = True
        elif status_filter == "pending":
            completed = False

        tasks = self.tasks_table.get_tasks_for_user(
            user_id=context.target_user_id,
            label=query_params.get("label"),
            completed=completed,
            college_id=query_params.get("collegeId"),
        )
        response_model = TaskListResponseModel(tasks=tasks)
        return format_lambda_response(200, response_model.model_dump(by_alias=True, exclude_none=True), event=event)

    def _handle_create_task(self, event: dict, user_id: UserId) -> dict:
        context = self.student_context_resolver.resolve(
            actor_user_id=user_id,
            student_id=get_query_string_parameters(event).get("studentId"),
            required_permission="manageTasks",
        )

        raw_body = event.get("body")
        if not raw_body:
            return create_error_response(ErrorCode.VALIDATION_ERROR, "Request body is missing.", event=event)

        try:
            request_data = CreateTaskRequestModel.model_validate_json(raw_body)
        except ValidationError as e:
            _LOGGER.error(f"Task create request body validation error: {e.errors()}")
            return create_error_response(
                ErrorCode.VALIDATION_ERROR, details=e.errors(include_url=False, include_context=False), event=event
            )

        timestamp = _now()
        task = TaskItemModel(
            userId=context.target_user_id,
            taskId=TaskId(str(uuid.uuid4())),
            title=request_data.title,
            notes=request_data.notes,
            label=request_data.label or "Other",
            dueDate=request_data.dueDate,
            priority=request_data.priority or "medium",
            collegeId=request_data.collegeId,
            createdBy=user_id,
            createdAt=timestamp,
            updatedAt=timestamp,
        )
        saved = self.tasks_table.save_task(task)
        _LOGGER.info(f"User {user_id} created task {saved.taskId} for student {context.target_user_id}")
        return format_lambda_response(201, saved.model_dump(by_alias=True, exclude_none=True), event=event)

    def _handle_update_task(self, event: dict, user_id: UserId, task_id: TaskId) -> dict:
        context = self.student_context_resolver.resolve(
            actor_user_id=user_id,
            student_id=get_query_string_parameters(event).get("studentId"),
            required_permission="manageTasks",
        )

        task = self.tasks_table.get_task(context.target_user_id, task_id)
        if task is None:
            return create_error_response(ErrorCode.RESOURCE_NOT_FOUND, "Task not found", event=event)

        raw_body = event.get("body")
        if not raw_body:
            return create_error_response(ErrorCode.VALIDATION_ERROR, "Request body is missing.", event=event)

        try:
            updates = UpdateTaskRequestModel.model_validate_json(raw_body)
        except ValidationError as e:
            _LOGGER.error(f"Task update request body validation error: {e.errors()}")
            return create_error_response(
                ErrorCode.VALIDATION_ERROR, details=e.errors(include_url=False, include_context=False), event=event
            )

        timestamp = _now()
        changes: dict[str, typing.Any] = updates.model_dump(
            exclude_unset=True, exclude={"completed", "acknowledged"}
        )

        if updates.completed is not None:
            changes["completed"] = updates.completed
            changes["completedAt"] = timestamp if updates.completed else None

        if updates.acknowledged is not None:
            changes["acknowledgedAt"] = timestamp if updates.acknowledged else None
            changes["acknowledgedBy"] = user_id if updates.acknowledged else None

        changes["updatedAt"] = timestamp
        try:
            updated_task = TaskItemModel.model_validate({**task.model_dump(), **changes})
        except ValidationError as e:
            _LOGGER.error(f"Task {task_id} would be invalid after update: {e.errors()}")
            return create_error_response(
                ErrorCode.VALIDATION_ERROR, details=e.errors(include_url=False, include_context=False), event=event
            )

        saved = self.tasks_table.save_task(updated_task)
        return format_lambda_response(200, saved.model_dump(by_alias=True, exclude_none=True), event=event)

    def _handle_delete_task(self, event: dict, user_id: UserId, task_id: TaskId) -> dict:
        context = self.student_context_resolver.resolve(
            actor_user_id=user_id,
            student_id=get_query_string_parameters(event).get("studentId"),
            required_permission="manageTasks",
        )

        if not self.tasks_table.delete_task(context.target_user_id, task_id):
            return create_error_response(ErrorCode.RESOURCE_NOT_FOUND, "Task not found", event=event)
        return format_lambda_response(200, {"success": True}, event=event)

    def handle(self, event: dict) -> dict:
        user_id = get_user_id_from_event(event)
        if not user_id:
            return create_error_response(ErrorCode.AUTHENTICATION_FAILED, event=event)

        http_method = get_method(event).upper()
        path = get_path(event)
        path_parts = path.strip("/").split("/")

        _LOGGER.info(f"TasksApiHandler: {http_method} {path} for user: {user_id}")

        try:
            if path == "/tasks":
                if http_method == "GET":
                    return self._handle_get_tasks(event, user_id)
                if http_method == "POST":
                    return self._handle_create_task(event, user_id)
                return create_error_response(ErrorCode.METHOD_NOT_ALLOWED, event=event)

            elif len(path_parts) == 2 and path_parts[0] == "tasks":
                # Path: /tasks/{taskId}
                task_id = TaskId(path_parts[1])
                if http_method == "PATCH":
                    return self._handle_update_task(event, user_id, task_id)
                if http_method == "DELETE":
                    return self._handle_delete_task(event, user_id, task_id)
                return create_error_response(ErrorCode.METHOD_NOT_ALLOWED, event=event)

            else:
                _LOGGER.warning(f"Unsupported path or method for Tasks: {http_method} {path}")
                return create_error_response(ErrorCode.RESOURCE_NOT_FOUND, event=event)

        except AuthorizationError as ae:
            _LOGGER.warning(f"Authorization failed for user {user_id} on {http_method} {path}: {ae.message}")
            return ae.to_response(event)
        except json.JSONDecodeError:
            _LOGGER.error("Tasks request body is not valid JSON.", exc_info=True)
            return create_error_response(ErrorCode.VALIDATION_ERROR, event=event)
        except Exception as e:
            _LOGGER.error(f"Unexpected error in TasksApiHandler for user {user_id}: {str(e)}", exc_info=True)
            return create_error_response(ErrorCode.INTERNAL_ERROR, event=event)


def tasks_lambda_handler(event: dict[str, typing.Any], context: typing.Any) -> dict[str, typing.Any]:
    _LOGGER.debug("Global tasks_lambda_handler received event.")

    try:
        users_table = UsersTable(get_users_table_name())
        collaborator_links_table = CollaboratorLinksTable(get_collaborator_links_table_name())
        api_handler = TasksApiHandler(
            tasks_table=TasksTable(get_tasks_table_name()),
            student_context_resolver=StudentContextResolver(
                users_table=users_table,
                collaborator_links_table=collaborator_links_table,
            ),
        )
        return api_handler.handle(event)

    except ValueError as ve:
        _LOGGER.critical(f"Configuration error in tasks_lambda_handler: {str(ve)}", exc_info=True)
        return create_error_response(ErrorCode.INTERNAL_ERROR, "Server configuration error")
    except Exception as e:
        _LOGGER.critical(f"Error during TasksApiHandler: {str(e)}", exc_info=True)
        return create_error_response(ErrorCode.INTERNAL_ERROR)
