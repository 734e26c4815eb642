import logging
import typing

import boto3
import pydantic
from boto3.dynamodb.conditions import Key
from botocore.exceptions import ClientError

from college_tracker.models.essay_models import EssayItemModel
from college_tracker.utils.base_types import CollegeId, EssayId, StudentId

_LOGGER = logging.getLogger(__name__)
_LOGGER.setLevel(logging.INFO)


class EssaysTable:
    """
    Data Abstraction Layer for a student's application essays.

    Table Schema:
      - PK: userId (student who owns the essay)
      - SK: essayId
    """

    def __init__(self, table_name: str) -> None:
        self.client = boto3.resource("dynamodb")
        self.table = self.client.Table(table_name)

    def _parse_item(self, item: dict[str, typing.Any]) -> typing.Optional[EssayItemModel]:
        try:
            return EssayItemModel.model_validate(item)
        except pydantic.ValidationError as e:
            _LOGGER.error(f"Validation error for essay item (essayId: {item.get('essayId')}): {e}", exc_info=True)
            return None

    def get_essays_for_user(self, user_id: StudentId) -> list[EssayItemModel]:
        """Returns the student's essays, most recently updated first."""
        ddb_items: list[dict[str, typing.Any]] = []
        query_kwargs: dict[str, typing.Any] = {"KeyConditionExpression": Key("userId").eq(user_id)}
        try:
            response = self.table.query(**query_kwargs)
            ddb_items.extend(response.get("Items", []))
            while "LastEvaluatedKey" in response:
                response = self.table.query(ExclusiveStartKey=response["LastEvaluatedKey"], **query_kwargs)
                ddb_items.extend(response.get("Items", []))
        except ClientError as e:
            _LOGGER.error(f"Error fetching essays for {user_id}: {e.response['Error']['Message']}", exc_info=True)
            raise

        essays = [essay for essay in (self._parse_item(item) for item in ddb_items) if essay is not None]
        return sorted(essays, key=lambda essay: essay.updatedAt, reverse=True)

    def get_essay(self, user_id: StudentId, essay_id: EssayId) -> typing.Optional[EssayItemModel]:
        try:
            response = self.table.get_item(Key={"userId": user_id, "essayId": essay_id})
        except ClientError as e:
            _LOGGER.error(f"Error fetching essay {essay_id} for {user_id}: {e.response['Error']['Message']}")
            raise
        item = response.get("Item")
        return self._parse_item(item) if item else None

    def save_essay(self, essay: EssayItemModel) -> EssayItemModel:
        try:
            self.table.put_item(Item=essay.model_dump(exclude_none=True))
            _LOGGER.info(f"Saved essay {essay.essayId} for user {essay.userId}")
            return essay
        except ClientError as e:
            _LOGGER.error(f"Error saving essay {essay.essayId}: {e.response['Error']['Message']}", exc_info=True)
            raise

    def delete_essays_for_college(self, user_id: StudentId, college_id: CollegeId) -> int:
        """Deletes every essay tied to the college and returns how many were removed."""
        essays = [essay for essay in self.get_essays_for_user(user_id) if essay.collegeId == college_id]
        try:
            with self.table.batch_writer() as batch:
                for essay in essays:
                    batch.delete_item(Key={"userId": essay.userId, "essayId": essay.essayId})
        except ClientError as e:
            _LOGGER.error(
                f"Error deleting essays for college {college_id}: {e.response['Error']['Message']}", exc_info=True
            )
            raise
        _LOGGER.info(f"Deleted {len(essays)} essays of college {college_id} for user {user_id}")
        return len(essays)
