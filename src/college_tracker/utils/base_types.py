import typing

UserId = typing.NewType("UserId", str)
StudentId = typing.NewType("StudentId", str)
CollaboratorId = typing.NewType("CollaboratorId", str)
AccessTokenId = typing.NewType("AccessTokenId", str)

LinkId = typing.NewType("LinkId", str)
TaskId = typing.NewType("TaskId", str)
EssayId = typing.NewType("EssayId", str)
IsoTimestamp = typing.NewType("IsoTimestamp", str)
CollegeId = typing.NewType("CollegeId", str)
