import logging
import typing

import boto3
import pydantic
from boto3.dynamodb.conditions import Key
from botocore.exceptions import ClientError

from college_tracker.models.college_models import CollegeItemModel
from college_tracker.utils.base_types import CollegeId, StudentId

_LOGGER = logging.getLogger(__name__)
_LOGGER.setLevel(logging.INFO)


class CollegesTable:
    """
    Data Abstraction Layer for the colleges on a student's list.

    Table Schema:
      - PK: userId (student applying)
      - SK: collegeId
    """

    def __init__(self, table_name: str) -> None:
        self.client = boto3.resource("dynamodb")
        self.table = self.client.Table(table_name)

    def _parse_item(self, item: dict[str, typing.Any]) -> typing.Optional[CollegeItemModel]:
        try:
            return CollegeItemModel.model_validate(item)
        except pydantic.ValidationError as e:
            _LOGGER.error(f"Validation error for college item (collegeId: {item.get('collegeId')}): {e}", exc_info=True)
            return None

    def get_colleges_for_user(self, user_id: StudentId) -> list[CollegeItemModel]:
        """Returns the student's colleges, earliest deadline first."""
        ddb_items: list[dict[str, typing.Any]] = []
        query_kwargs: dict[str, typing.Any] = {"KeyConditionExpression": Key("userId").eq(user_id)}
        try:
            response = self.table.query(**query_kwargs)
            ddb_items.extend(response.get("Items", []))
            while "LastEvaluatedKey" in response:
                response = self.table.query(ExclusiveStartKey=response["LastEvaluatedKey"], **query_kwargs)
                ddb_items.extend(response.get("Items", []))
        except ClientError as e:
            _LOGGER.error(f"Error fetching colleges for {user_id}: {e.response['Error']['Message']}", exc_info=True)
            raise

        colleges = [college for college in (self._parse_item(item) for item in ddb_items) if college is not None]
        return sorted(colleges, key=lambda college: college.deadline)

    def get_college(self, user_id: StudentId, college_id: CollegeId) -> typing.Optional[CollegeItemModel]:
        try:
            response = self.table.get_item(Key={"userId": user_id, "collegeId": college_id})
        except ClientError as e:
            _LOGGER.error(f"Error fetching college {college_id} for {user_id}: {e.response['Error']['Message']}")
            raise
        item = response.get("Item")
        return self._parse_item(item) if item else None

    def save_college(self, college: CollegeItemModel) -> CollegeItemModel:
        try:
            self.table.put_item(Item=college.model_dump(exclude_none=True))
            _LOGGER.info(f"Saved college {college.collegeId} for user {college.userId}")
            return college
        except ClientError as e:
            _LOGGER.error(f"Error saving college {college.collegeId}: {e.response['Error']['Message']}", exc_info=True)
            raise

    def delete_college(self, user_id: StudentId, college_id: CollegeId) -> bool:
        """:return: True if a college was deleted, False if it did not exist."""
        try:
            response = self.table.delete_item(
                Key={"userId": user_id, "collegeId": college_id},
                ReturnValues="ALL_OLD",
            )
        except ClientError as e:
            _LOGGER.error(f"Error deleting college {college_id}: {e.response['Error']['Message']}", exc_info=True)
            raise
        deleted = bool(response.get("Attributes"))
        if deleted:
            _LOGGER.info(f"Deleted college {college_id} for user {user_id}")
        return deleted
