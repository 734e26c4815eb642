import logging
import typing
from datetime import datetime, timezone

import boto3
from botocore.exceptions import ClientError
from pydantic import ValidationError

from college_tracker.models.user_models import UserModel, UserRole
from college_tracker.utils.base_types import IsoTimestamp, StudentId, UserId

_LOGGER = logging.getLogger(__name__)
_LOGGER.setLevel(logging.INFO)


class RoleTransitionError(ValueError):
    def __init__(self, user_id: UserId, current_role: typing.Optional[str], requested_role: str) -> None:
        super().__init__(f"User '{user_id}' cannot change role from '{current_role}' to '{requested_role}'")
        self.user_id = user_id
        self.current_role = current_role
        self.requested_role = requested_role


def normalize_email(email: str) -> str:
    return email.strip().lower()


class UsersTable:
    """
    Data Abstraction Layer for interacting with the Users DynamoDB table.
    Holds every actor (students, counselors, parents) and the delegate's active-student hint.

    Table Schema:
      - PK: userId (user's normalized email address)
    """

    def __init__(self, table_name: str) -> None:
        self.client = boto3.resource("dynamodb")
        self.table = self.client.Table(table_name)

    def _now(self) -> IsoTimestamp:
        return IsoTimestamp(datetime.now(timezone.utc).isoformat())

    def get_user(self, user_id: UserId) -> typing.Optional[UserModel]:
        """
        Retrieves a user from DynamoDB.

        :param user_id: The ID of the user.
        :return: UserModel instance if found, else None.
        """
        _LOGGER.debug(f"Fetching user_id: {user_id}")
        try:
            response = self.table.get_item(Key={"userId": user_id})
            item_data = response.get("Item")
            if item_data:
                return UserModel.model_validate(item_data)
            _LOGGER.debug(f"No user found for user_id: {user_id}")
            return None
        except ClientError as e:
            _LOGGER.error(f"Failed to get user_id {user_id}: {e.response['Error']['Message']}")
            raise
        except ValidationError as ve:
            _LOGGER.error(f"Failed to validate user data for user_id {user_id}: {ve}", exc_info=True)
            return None

    def get_user_by_email(self, email: str) -> typing.Optional[UserModel]:
        return self.get_user(UserId(normalize_email(email)))

    def create_user(
        self,
        email: str,
        role: UserRole = "student",
        name: typing.Optional[str] = None,
    ) -> UserModel:
        """
        Creates a user keyed by their normalized email. If another request created the same
        user first, the existing record is returned instead.

        :raises ClientError: on any DynamoDB failure other than the duplicate-key race.
        """
        normalized_email = normalize_email(email)
        timestamp = self._now()
        user = UserModel(
            userId=UserId(normalized_email),
            email=normalized_email,
            name=name,
            role=role,
            createdAt=timestamp,
            updatedAt=timestamp,
        )

        try:
            self.table.put_item(
                Item=user.model_dump(exclude_none=True),
                ConditionExpression="attribute_not_exists(userId)",
            )
            _LOGGER.info(f"Created user {user.userId} with role '{role}'.")
            return user
        except ClientError as e:
            if e.response["Error"]["Code"] == "ConditionalCheckFailedException":
                _LOGGER.info(f"User {user.userId} already exists, returning existing record.")
                existing = self.get_user(user.userId)
                if existing:
                    return existing
            _LOGGER.error(f"Error creating user {user.userId}: {e.response['Error']['Message']}", exc_info=True)
            raise

    def get_or_create_user(
        self,
        email: str,
        role: UserRole = "student",
        name: typing.Optional[str] = None,
    ) -> UserModel:
        existing = self.get_user_by_email(email)
        if existing:
            return existing
        return self.create_user(email=email, role=role, name=name)

    def set_active_student(self, user_id: UserId, student_id: typing.Optional[StudentId]) -> None:
        """
        Persists (or clears, when student_id is None) the user's active-student hint.

        :raises ClientError: if the write fails.
        """
        try:
            if student_id is None:
                self.table.update_item(
                    Key={"userId": user_id},
                    UpdateExpression="SET #updatedAt = :updatedAt REMOVE #activeStudentId",
                    ExpressionAttributeNames={"#updatedAt": "updatedAt", "#activeStudentId": "activeStudentId"},
                    ExpressionAttributeValues={":updatedAt": self._now()},
                    ConditionExpression="attribute_exists(userId)",
                )
                _LOGGER.info(f"Cleared active student for user {user_id}.")
            else:
                self.table.update_item(
                    Key={"userId": user_id},
                    UpdateExpression="SET #activeStudentId = :activeStudentId, #updatedAt = :updatedAt",
                    ExpressionAttributeNames={"#updatedAt": "updatedAt", "#activeStudentId": "activeStudentId"},
                    ExpressionAttributeValues={":activeStudentId": student_id, ":updatedAt": self._now()},
                    ConditionExpression="attribute_exists(userId)",
                )
                _LOGGER.info(f"Set active student for user {user_id} to {student_id}.")
        except ClientError as e:
            _LOGGER.error(
                f"Error setting active student for user {user_id}: {e.response['Error']['Message']}", exc_info=True
            )
            raise

    def promote_role(self, user: UserModel, new_role: UserRole) -> UserModel:
        """
        Moves a student to a delegate role. The write is conditional on the stored role still
        being 'student', so a concurrent change can never be overwritten.

        :raises RoleTransitionError: if the transition is not allowed.
        """
        if user.role == new_role:
            return user
        if not user.can_transition_to(new_role):
            raise RoleTransitionError(user.userId, user.role, new_role)

        try:
            response = self.table.update_item(
                Key={"userId": user.userId},
                UpdateExpression="SET #role = :newRole, #updatedAt = :updatedAt",
                ConditionExpression="#role = :student",
                ExpressionAttributeNames={"#role": "role", "#updatedAt": "updatedAt"},
                ExpressionAttributeValues={
                    ":newRole": new_role,
                    ":student": "student",
                    ":updatedAt": self._now(),
                },
                ReturnValues="ALL_NEW",
            )
            _LOGGER.info(f"Promoted user {user.userId} from student to {new_role}.")
            return UserModel.model_validate(response["Attributes"])
        except ClientError as e:
            if e.response["Error"]["Code"] == "ConditionalCheckFailedException":
                _LOGGER.warning(f"Role of user {user.userId} changed concurrently; refusing promotion to {new_role}.")
                raise RoleTransitionError(user.userId, None, new_role) from e
            _LOGGER.error(f"Error promoting user {user.userId}: {e.response['Error']['Message']}", exc_info=True)
            raise

    def update_last_login(self, user_id: UserId) -> bool:
        """
        Updates the lastLoginAt timestamp for a user.

        :return: True if successful, False otherwise.
        """
        try:
            self.table.update_item(
                Key={"userId": user_id},
                UpdateExpression="SET #lastLoginAt = :lastLoginAt",
                ExpressionAttributeNames={"#lastLoginAt": "lastLoginAt"},
                ExpressionAttributeValues={":lastLoginAt": self._now()},
                ConditionExpression="attribute_exists(userId)",
            )
            return True
        except ClientError as e:
            _LOGGER.error(f"Error updating last login for {user_id}: {e.response['Error']['Message']}", exc_info=True)
            return False
