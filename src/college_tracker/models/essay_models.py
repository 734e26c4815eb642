import typing

import pydantic
from pydantic import BaseModel, Field

from college_tracker.utils.base_types import CollegeId, EssayId, IsoTimestamp, StudentId, UserId

ESSAY_ASSIST_MODES = ("critique", "rewrite", "coach")


def count_words(content: str) -> int:
    return len(content.split())


class LineEditModel(BaseModel):
    line: str
    suggestion: str
    reason: typing.Optional[str] = None


class EssayCritiqueModel(BaseModel):
    """Structured feedback returned by the AI service for a single essay draft."""

    strengths: list[str] = Field(default_factory=list)
    issues: list[str] = Field(default_factory=list)
    lineEdits: list[LineEditModel] = Field(default_factory=list)
    overallFeedback: str


class RewriteApprovalModel(BaseModel):
    """An AI rewrite that a reviewer accepted as the essay's new content."""

    instruction: typing.Optional[str] = None
    content: str
    previousContent: str
    approvedBy: UserId
    approvedByName: typing.Optional[str] = None
    approvedAt: IsoTimestamp


class EssayItemModel(BaseModel):
    # PK: userId (the student who owns the essay), SK: essayId
    userId: StudentId
    essayId: EssayId
    title: str = Field(min_length=1)
    prompt: typing.Optional[str] = None
    content: str = ""
    wordCount: int = 0
    collegeId: typing.Optional[CollegeId] = None
    collegeName: typing.Optional[str] = None
    wordLimit: typing.Optional[int] = Field(default=None, gt=0)

    rewriteApprovals: list[RewriteApprovalModel] = Field(default_factory=list)

    createdBy: UserId
    lastEditedBy: typing.Optional[UserId] = None
    createdAt: IsoTimestamp
    updatedAt: IsoTimestamp


class CreateEssayRequestModel(BaseModel):
    title: str = Field(min_length=1)
    prompt: typing.Optional[str] = None
    content: str = ""
    collegeId: typing.Optional[CollegeId] = None
    collegeName: typing.Optional[str] = None
    wordLimit: typing.Optional[int] = Field(default=None, gt=0)


class UpdateEssayRequestModel(BaseModel):
    # Omitted fields are left alone; prompt, collegeName and wordLimit may be cleared with null
    title: typing.Optional[str] = Field(default=None, min_length=1)
    prompt: typing.Optional[str] = None
    content: typing.Optional[str] = None
    collegeName: typing.Optional[str] = None
    wordLimit: typing.Optional[int] = Field(default=None, gt=0)

    @pydantic.field_validator("title", "content")
    @classmethod
    def _not_null(cls, value: typing.Any) -> typing.Any:
        if value is None:
            raise ValueError("may be omitted but not set to null")
        return value


class EssayAssistRequestModel(BaseModel):
    mode: str = "critique"
    instruction: typing.Optional[str] = None


class ApproveRewriteRequestModel(BaseModel):
    content: str = Field(min_length=1)
    instruction: typing.Optional[str] = None


class EssayListResponseModel(BaseModel):
    essays: list[EssayItemModel] = Field(default_factory=list)
