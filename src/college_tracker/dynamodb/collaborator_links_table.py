import logging
import typing
import uuid
from datetime import datetime, timezone

import boto3
import pydantic
from boto3.dynamodb.conditions import Attr, Key
from botocore.exceptions import ClientError

from college_tracker.models.collaboration_models import (
    CollaboratorLinkModel,
    CollaboratorPermissionsModel,
    CollaboratorRelationship,
    LinkStatusType,
    PermissionKey,
)
from college_tracker.utils.base_types import (
    CollaboratorId,
    IsoTimestamp,
    LinkId,
    StudentId,
    UserId,
)

_LOGGER = logging.getLogger(__name__)
_LOGGER.setLevel(logging.INFO)


def _recency_sort_key(link: CollaboratorLinkModel) -> tuple[str, str, str]:
    # Missing timestamps sort after any real one when ordering newest first
    return (link.lastSeenAt or "", link.updatedAt or "", link.createdAt or "")


class CollaboratorLinksTable:
    """
    Data Abstraction Layer for interacting with the CollaboratorLinks DynamoDB table.
    Each item is a delegation from a student to a counselor or parent.

    Table Schema:
      - PK: studentId
      - SK: collaboratorId   (so there is at most one link per ordered pair)
    GSI ('CollaboratorIndex'):
      - GSI_PK: collaboratorId
      - GSI_SK: studentId
    GSI ('LinkIdIndex'):
      - GSI_PK: linkId
    """

    COLLABORATOR_INDEX_NAME = "CollaboratorIndex"
    LINK_ID_INDEX_NAME = "LinkIdIndex"

    def __init__(self, table_name: str) -> None:
        self.client = boto3.resource("dynamodb")
        self.table = self.client.Table(table_name)

    def _now(self) -> IsoTimestamp:
        return IsoTimestamp(datetime.now(timezone.utc).isoformat())

    def _parse_items(self, ddb_items: list[dict[str, typing.Any]]) -> list[CollaboratorLinkModel]:
        parsed_items = []
        for item in ddb_items:
            try:
                parsed_items.append(CollaboratorLinkModel.model_validate(item))
            except pydantic.ValidationError as e:
                _LOGGER.error(f"Validation error for link item (linkId: {item.get('linkId')}): {e}", exc_info=True)
        return parsed_items

    def _query_all(self, **query_kwargs: typing.Any) -> list[CollaboratorLinkModel]:
        items: list[dict[str, typing.Any]] = []
        response = self.table.query(**query_kwargs)
        items.extend(response.get("Items", []))
        while "LastEvaluatedKey" in response:
            response = self.table.query(ExclusiveStartKey=response["LastEvaluatedKey"], **query_kwargs)
            items.extend(response.get("Items", []))
        return self._parse_items(items)

    def get_link(self, student_id: StudentId, collaborator_id: CollaboratorId) -> typing.Optional[CollaboratorLinkModel]:
        """Returns the link for the (student, collaborator) pair regardless of its status."""
        try:
            response = self.table.get_item(Key={"studentId": student_id, "collaboratorId": collaborator_id})
            item = response.get("Item")
            if not item:
                return None
            parsed = self._parse_items([item])
            return parsed[0] if parsed else None
        except ClientError as e:
            _LOGGER.error(
                f"Error fetching link {student_id} -> {collaborator_id}: {e.response['Error']['Message']}",
                exc_info=True,
            )
            raise

    def get_active_link(
        self,
        student_id: StudentId,
        collaborator_id: CollaboratorId,
    ) -> typing.Optional[CollaboratorLinkModel]:
        link = self.get_link(student_id, collaborator_id)
        if link and link.status == "active":
            return link
        _LOGGER.debug(f"No active link from student '{student_id}' to collaborator '{collaborator_id}'.")
        return None

    def get_link_by_id(self, link_id: LinkId) -> typing.Optional[CollaboratorLinkModel]:
        try:
            links = self._query_all(
                IndexName=self.LINK_ID_INDEX_NAME,
                KeyConditionExpression=Key("linkId").eq(link_id),
            )
            return links[0] if links else None
        except ClientError as e:
            _LOGGER.error(f"Error fetching link by id {link_id}: {e.response['Error']['Message']}", exc_info=True)
            raise

    def save_link(self, link: CollaboratorLinkModel) -> CollaboratorLinkModel:
        """
        Writes the full link item, stamping updatedAt.

        :raises ClientError: if the write fails.
        """
        to_save = link.model_copy(update={"updatedAt": self._now()})
        try:
            self.table.put_item(Item=to_save.model_dump(exclude_none=True))
            _LOGGER.info(
                f"Saved link {to_save.linkId} ({to_save.studentId} -> {to_save.collaboratorId}, status={to_save.status})."
            )
            return to_save
        except ClientError as e:
            _LOGGER.error(f"Error saving link {to_save.linkId}: {e.response['Error']['Message']}", exc_info=True)
            raise

    def upsert_active_link(
        self,
        student_id: StudentId,
        collaborator_id: CollaboratorId,
        relationship: CollaboratorRelationship,
        permissions: CollaboratorPermissionsModel,
        created_by: UserId,
        note: typing.Optional[str] = None,
    ) -> CollaboratorLinkModel:
        """
        Creates the link for the pair, or re-activates and overwrites the existing one.
        Links go straight to 'active'; there is no separate acceptance step.
        """
        timestamp = self._now()
        existing = self.get_link(student_id, collaborator_id)

        if existing is None:
            link = CollaboratorLinkModel(
                studentId=student_id,
                collaboratorId=collaborator_id,
                linkId=LinkId(str(uuid.uuid4())),
                relationship=relationship,
                status="active",
                permissions=permissions,
                createdBy=created_by,
                note=note,
                acceptedAt=timestamp,
                createdAt=timestamp,
                updatedAt=timestamp,
            )
        else:
            link = existing.model_copy(
                update={
                    "relationship": relationship,
                    "permissions": permissions,
                    "status": "active",
                    "note": note,
                    "createdBy": existing.createdBy or created_by,
                    "acceptedAt": timestamp,
                }
            )

        return self.save_link(link)

    def get_links_for_student(
        self,
        student_id: StudentId,
        statuses: typing.Optional[typing.Collection[LinkStatusType]] = None,
    ) -> list[CollaboratorLinkModel]:
        """Links granted by a student, newest first. `statuses` limits the result when given."""
        query_kwargs: dict[str, typing.Any] = {"KeyConditionExpression": Key("studentId").eq(student_id)}
        if statuses:
            query_kwargs["FilterExpression"] = Attr("status").is_in(list(statuses))
        try:
            links = self._query_all(**query_kwargs)
        except ClientError as e:
            _LOGGER.error(f"Error listing links for student {student_id}: {e.response['Error']['Message']}")
            raise
        return sorted(links, key=lambda link: link.createdAt, reverse=True)

    def get_links_for_collaborator(
        self,
        collaborator_id: CollaboratorId,
        statuses: typing.Optional[typing.Collection[LinkStatusType]] = None,
    ) -> list[CollaboratorLinkModel]:
        """Links held by a counselor or parent, newest first. Uses the GSI."""
        query_kwargs: dict[str, typing.Any] = {
            "IndexName": self.COLLABORATOR_INDEX_NAME,
            "KeyConditionExpression": Key("collaboratorId").eq(collaborator_id),
        }
        if statuses:
            query_kwargs["FilterExpression"] = Attr("status").is_in(list(statuses))
        try:
            links = self._query_all(**query_kwargs)
        except ClientError as e:
            _LOGGER.error(
                f"Error listing links for collaborator {collaborator_id}: {e.response['Error']['Message']}"
            )
            raise
        return sorted(links, key=lambda link: link.createdAt, reverse=True)

    def find_most_recent_active_link(
        self,
        collaborator_id: CollaboratorId,
        required_permission: typing.Optional[PermissionKey] = None,
    ) -> typing.Optional[CollaboratorLinkModel]:
        """
        Picks the collaborator's most recently touched active link, optionally restricted to
        links granting `required_permission`. Ordered by lastSeenAt, then updatedAt, then
        createdAt, all descending.
        """
        candidates = self.get_links_for_collaborator(collaborator_id, statuses=["active"])
        if required_permission:
            candidates = [link for link in candidates if link.permissions.allows(required_permission)]

        if not candidates:
            _LOGGER.info(
                f"No active link for collaborator {collaborator_id} (required permission: {required_permission})."
            )
            return None

        return max(candidates, key=_recency_sort_key)
