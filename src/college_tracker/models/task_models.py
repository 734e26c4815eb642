import typing

import pydantic
from pydantic import BaseModel, Field

from college_tracker.utils.base_types import CollegeId, IsoTimestamp, StudentId, TaskId, UserId

TaskPriority = typing.Literal["low", "medium", "high"]

PRIORITY_RANK: dict[str, int] = {"low": 0, "medium": 1, "high": 2}


class TaskItemModel(BaseModel):
    # PK: userId (the student who owns the task), SK: taskId
    userId: StudentId
    taskId: TaskId
    title: str = Field(min_length=1)
    notes: typing.Optional[str] = None
    label: str = "Other"
    dueDate: typing.Optional[IsoTimestamp] = None
    priority: TaskPriority = "medium"
    completed: bool = False
    completedAt: typing.Optional[IsoTimestamp] = None
    acknowledgedAt: typing.Optional[IsoTimestamp] = None
    acknowledgedBy: typing.Optional[UserId] = None
    collegeId: typing.Optional[CollegeId] = None
    createdBy: UserId
    createdAt: IsoTimestamp
    updatedAt: IsoTimestamp


class CreateTaskRequestModel(BaseModel):
    title: str = Field(min_length=1)
    notes: typing.Optional[str] = None
    label: typing.Optional[str] = None
    dueDate: typing.Optional[IsoTimestamp] = None
    priority: typing.Optional[TaskPriority] = None
    collegeId: typing.Optional[CollegeId] = None


class UpdateTaskRequestModel(BaseModel):
    # Omitted fields are left alone; notes and dueDate may be cleared with null
    title: typing.Optional[str] = Field(default=None, min_length=1)
    notes: typing.Optional[str] = None
    label: typing.Optional[str] = None
    dueDate: typing.Optional[IsoTimestamp] = None
    priority: typing.Optional[TaskPriority] = None
    completed: typing.Optional[bool] = None
    acknowledged: typing.Optional[bool] = None

    @pydantic.field_validator("title", "label", "priority", "completed", "acknowledged")
    @classmethod
    def _not_null(cls, value: typing.Any) -> typing.Any:
        if value is None:
            raise ValueError("may be omitted but not set to null")
        return value


class TaskListResponseModel(BaseModel):
    tasks: list[TaskItemModel] = Field(default_factory=list)
