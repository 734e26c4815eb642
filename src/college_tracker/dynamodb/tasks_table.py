import logging
import typing

import boto3
import pydantic
from boto3.dynamodb.conditions import Attr, Key
from botocore.exceptions import ClientError

from college_tracker.models.task_models import PRIORITY_RANK, TaskItemModel
from college_tracker.utils.base_types import CollegeId, StudentId, TaskId

_LOGGER = logging.getLogger(__name__)
_LOGGER.setLevel(logging.INFO)


class TasksTable:
    """
    Data Abstraction Layer for a student's application tasks and reminders.

    Table Schema:
      - PK: userId (student who owns the task)
      - SK: taskId
    """

    def __init__(self, table_name: str) -> None:
        self.client = boto3.resource("dynamodb")
        self.table = self.client.Table(table_name)

    def _parse_items(self, ddb_items: list[dict[str, typing.Any]]) -> list[TaskItemModel]:
        parsed_items = []
        for item in ddb_items:
            try:
                parsed_items.append(TaskItemModel.model_validate(item))
            except pydantic.ValidationError as e:
                _LOGGER.error(f"Validation error for task item (taskId: {item.get('taskId')}): {e}", exc_info=True)
        return parsed_items

    def get_tasks_for_user(
        self,
        user_id: StudentId,
        label: typing.Optional[str] = None,
        completed: typing.Optional[bool] = None,
        college_id: typing.Optional[CollegeId] = None,
    ) -> list[TaskItemModel]:
        """
        Returns the student's tasks ordered by due date (undated last), then by priority
        with the highest first.
        """
        query_kwargs: dict[str, typing.Any] = {"KeyConditionExpression": Key("userId").eq(user_id)}

        filters = []
        if label:
            filters.append(Attr("label").eq(label))
        if completed is not None:
            filters.append(Attr("completed").eq(completed))
        if college_id:
            filters.append(Attr("collegeId").eq(college_id))
        if filters:
            filter_expression = filters[0]
            for extra in filters[1:]:
                filter_expression = filter_expression & extra
            query_kwargs["FilterExpression"] = filter_expression

        ddb_items: list[dict[str, typing.Any]] = []
        try:
            response = self.table.query(**query_kwargs)
            ddb_items.extend(response.get("Items", []))
            while "LastEvaluatedKey" in response:
                response = self.table.query(ExclusiveStartKey=response["LastEvaluatedKey"], **query_kwargs)
                ddb_items.extend(response.get("Items", []))
        except ClientError as e:
            _LOGGER.error(f"Error fetching tasks for {user_id}: {e.response['Error']['Message']}", exc_info=True)
            raise

        tasks = self._parse_items(ddb_items)
        return sorted(
            tasks,
            key=lambda task: (task.dueDate is None, task.dueDate or "", -PRIORITY_RANK[task.priority]),
        )

    def get_task(self, user_id: StudentId, task_id: TaskId) -> typing.Optional[TaskItemModel]:
        try:
            response = self.table.get_item(Key={"userId": user_id, "taskId": task_id})
        except ClientError as e:
            _LOGGER.error(f"Error fetching task {task_id} for {user_id}: {e.response['Error']['Message']}")
            raise
        item = response.get("Item")
        if not item:
            return None
        parsed = self._parse_items([item])
        return parsed[0] if parsed else None

    def save_task(self, task: TaskItemModel) -> TaskItemModel:
        try:
            self.table.put_item(Item=task.model_dump(exclude_none=True))
            _LOGGER.info(f"Saved task {task.taskId} for user {task.userId}")
            return task
        except ClientError as e:
            _LOGGER.error(f"Error saving task {task.taskId}: {e.response['Error']['Message']}", exc_info=True)
            raise

    def delete_task(self, user_id: StudentId, task_id: TaskId) -> bool:
        """:return: True if a task was deleted, False if it did not exist."""
        try:
            response = self.table.delete_item(
                Key={"userId": user_id, "taskId": task_id},
                ReturnValues="ALL_OLD",
            )
        except ClientError as e:
            _LOGGER.error(f"Error deleting task {task_id}: {e.response['Error']['Message']}", exc_info=True)
            raise
        deleted = bool(response.get("Attributes"))
        if deleted:
            _LOGGER.info(f"Deleted task {task_id} for user {user_id}")
        return deleted

    def delete_tasks_for_college(self, user_id: StudentId, college_id: CollegeId) -> int:
        """Deletes every task tied to the college and returns how many were removed."""
        tasks = self.get_tasks_for_user(user_id, college_id=college_id)
        try:
            with self.table.batch_writer() as batch:
                for task in tasks:
                    batch.delete_item(Key={"userId": task.userId, "taskId": task.taskId})
        except ClientError as e:
            _LOGGER.error(
                f"Error deleting tasks for college {college_id}: {e.response['Error']['Message']}", exc_info=True
            )
            raise
        _LOGGER.info(f"Deleted {len(tasks)} tasks of college {college_id} for user {user_id}")
        return len(tasks)
