import typing

from pydantic import BaseModel

from college_tracker.models.user_models import UserRole


class LoginRequest(BaseModel):
    googleIdToken: str


class LoginResponse(BaseModel):
    accessToken: str
    userId: str
    role: UserRole
    activeStudentId: typing.Optional[str] = None
