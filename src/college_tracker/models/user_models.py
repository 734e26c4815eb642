import typing

import pydantic

from college_tracker.utils.base_types import IsoTimestamp, StudentId, UserId

UserRole = typing.Literal["student", "counselor", "parent"]

DELEGATE_ROLES: tuple[UserRole, ...] = ("counselor", "parent")


class UserModel(pydantic.BaseModel):
    """
    Pydantic model representing an actor (student, counselor or parent) stored in DynamoDB.
    For delegates, activeStudentId remembers the student last selected in the UI; it is a
    convenience default only and never grants access on its own.
    """

    userId: UserId = pydantic.Field(description="Partition Key")
    email: str = pydantic.Field(description="Lower-cased email address, unique across users")
    name: typing.Optional[str] = pydantic.Field(default=None)
    role: UserRole = pydantic.Field(default="student")
    activeStudentId: typing.Optional[StudentId] = pydantic.Field(
        default=None, description="Student currently in view (last-selected hint)"
    )
    createdAt: typing.Optional[IsoTimestamp] = pydantic.Field(default=None)
    updatedAt: typing.Optional[IsoTimestamp] = pydantic.Field(default=None)
    lastLoginAt: typing.Optional[IsoTimestamp] = pydantic.Field(default=None)

    @property
    def is_delegate(self) -> bool:
        return self.role in DELEGATE_ROLES

    def can_transition_to(self, new_role: UserRole) -> bool:
        """
        Roles only ever move from student to a delegate role.
        Staying on the same role is always fine.
        """
        if new_role == self.role:
            return True
        return self.role == "student" and new_role in DELEGATE_ROLES
