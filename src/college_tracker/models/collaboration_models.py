import typing

import pydantic
from pydantic import BaseModel, ConfigDict, Field

from college_tracker.utils.base_types import (
    CollaboratorId,
    IsoTimestamp,
    LinkId,
    StudentId,
    UserId,
)

CollaboratorRelationship = typing.Literal["counselor", "parent"]

LinkStatusType = typing.Literal["pending", "active", "revoked"]

PermissionKey = typing.Literal[
    "viewTasks",
    "manageTasks",
    "viewEssays",
    "editEssays",
    "viewCalendar",
    "manageCalendar",
    "viewFinancial",
    "approveAiSuggestions",
]


class CollaboratorPermissionsModel(BaseModel):
    """
    The fixed set of capabilities a student can delegate to a collaborator.
    Every field is required, so a stored or sanitized permission set is always complete.
    """

    model_config = ConfigDict(extra="ignore")

    viewTasks: bool
    manageTasks: bool
    viewEssays: bool
    editEssays: bool
    viewCalendar: bool
    manageCalendar: bool
    viewFinancial: bool
    approveAiSuggestions: bool

    def allows(self, permission: PermissionKey) -> bool:
        return bool(getattr(self, permission, False))


class CollaboratorLinkModel(BaseModel):
    # Full item as stored in DynamoDB.
    # PK: studentId, SK: collaboratorId (one link per ordered pair)
    studentId: StudentId
    collaboratorId: CollaboratorId
    linkId: LinkId

    relationship: CollaboratorRelationship
    status: LinkStatusType
    permissions: CollaboratorPermissionsModel
    createdBy: UserId
    note: typing.Optional[str] = None

    acceptedAt: typing.Optional[IsoTimestamp] = None
    lastSeenAt: typing.Optional[IsoTimestamp] = None
    createdAt: IsoTimestamp
    updatedAt: IsoTimestamp


class InviteCollaboratorRequestModel(BaseModel):
    collaboratorEmail: typing.Optional[str] = None
    relationship: typing.Optional[str] = None
    note: typing.Optional[str] = None
    permissions: typing.Optional[dict[str, typing.Any]] = None

    @property
    def resolved_relationship(self) -> CollaboratorRelationship:
        # Anything that isn't explicitly a parent invite is treated as a counselor invite
        return "parent" if self.relationship == "parent" else "counselor"


class UpdateCollaboratorLinkRequestModel(BaseModel):
    permissions: typing.Optional[dict[str, typing.Any]] = None
    note: typing.Optional[str] = None
    status: typing.Optional[str] = None


class ContextUpdateRequestModel(BaseModel):
    studentId: typing.Optional[StudentId] = None

    @pydantic.field_validator("studentId", mode="before")
    @classmethod
    def _empty_means_clear(cls, value: typing.Any) -> typing.Any:
        return value or None


class CollaboratorLinkListResponseModel(BaseModel):
    links: list[CollaboratorLinkModel] = Field(default_factory=list)
