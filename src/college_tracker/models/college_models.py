import typing
from datetime import datetime

from pydantic import BaseModel, Field

from college_tracker.utils.base_types import CollegeId, IsoTimestamp, StudentId, UserId

ApplicationPlan = typing.Literal["ED", "EA", "RD", "ED2", "EA2", "Rolling"]
ApplicationIntake = typing.Literal["Fall", "Spring", "Winter"]
ApplicationPhase = typing.Literal["researching", "drafting", "ready", "submitted", "decision"]
ApplicationDecision = typing.Literal["pending", "accepted", "rejected", "waitlisted", "deferred"]
RequirementStatus = typing.Literal["not_needed", "in_progress", "complete"]

UPDATABLE_SECTIONS = ("portal", "status", "financialAid", "requirementStatus", "requirements", "interview")


class CustomRequirementModel(BaseModel):
    title: str = Field(min_length=1)
    completed: bool = False


class RequirementsModel(BaseModel):
    # mainEssay is assumed unless turned off; everything else is opt-in
    mainEssay: bool = True
    supplements: bool = False
    recommendations: bool = False
    testing: bool = False
    transcript: bool = False
    fees: bool = False
    custom: list[CustomRequirementModel] = Field(default_factory=list)


class RequirementStatusModel(BaseModel):
    supplements: RequirementStatus = "in_progress"
    recommendations: RequirementStatus = "in_progress"
    testing: RequirementStatus = "not_needed"
    transcript: RequirementStatus = "in_progress"
    fees: RequirementStatus = "in_progress"


class PortalModel(BaseModel):
    url: typing.Optional[str] = None
    notes: typing.Optional[str] = None


class ApplicationStatusModel(BaseModel):
    phase: ApplicationPhase = "researching"
    decision: ApplicationDecision = "pending"
    submittedAt: typing.Optional[IsoTimestamp] = None
    decisionDate: typing.Optional[IsoTimestamp] = None
    notes: typing.Optional[str] = None


class FinancialAidModel(BaseModel):
    priorityDeadline: typing.Optional[IsoTimestamp] = None
    scholarshipUrl: typing.Optional[str] = None
    notes: typing.Optional[str] = None


class InterviewModel(BaseModel):
    required: bool = False
    scheduledAt: typing.Optional[IsoTimestamp] = None
    notes: typing.Optional[str] = None


class CollegeItemModel(BaseModel):
    # PK: userId (the student applying), SK: collegeId
    userId: StudentId
    collegeId: CollegeId
    name: str = Field(min_length=1)
    plan: ApplicationPlan
    deadline: IsoTimestamp
    intake: ApplicationIntake = "Fall"
    region: str = "US"
    portal: PortalModel = Field(default_factory=PortalModel)
    requirements: RequirementsModel = Field(default_factory=RequirementsModel)
    requirementStatus: RequirementStatusModel = Field(default_factory=RequirementStatusModel)
    status: ApplicationStatusModel = Field(default_factory=ApplicationStatusModel)
    financialAid: typing.Optional[FinancialAidModel] = None
    interview: typing.Optional[InterviewModel] = None
    notes: typing.Optional[str] = None
    createdBy: UserId
    createdAt: IsoTimestamp
    updatedAt: IsoTimestamp


class CreateCollegeRequestModel(BaseModel):
    name: str = Field(min_length=1)
    plan: ApplicationPlan
    # Date-only or naive values are taken as UTC
    deadline: datetime
    intake: ApplicationIntake = "Fall"
    region: str = "US"
    portalUrl: typing.Optional[str] = None
    notes: typing.Optional[str] = None
    requirements: RequirementsModel = Field(default_factory=RequirementsModel)
    requirementStatus: RequirementStatusModel = Field(default_factory=RequirementStatusModel)


class UpdateCollegeRequestModel(BaseModel):
    """
    Partial update. Each section present is merged over what is stored, so a client can
    send {"status": {"phase": "submitted"}} without repeating the rest of the status.
    """

    portal: typing.Optional[dict[str, typing.Any]] = None
    status: typing.Optional[dict[str, typing.Any]] = None
    financialAid: typing.Optional[dict[str, typing.Any]] = None
    requirementStatus: typing.Optional[dict[str, typing.Any]] = None
    requirements: typing.Optional[dict[str, typing.Any]] = None
    interview: typing.Optional[dict[str, typing.Any]] = None
    notes: typing.Optional[str] = None
