import boto3
import pytest
from moto import mock_aws

from college_tracker.dynamodb.essays_table import EssaysTable
from college_tracker.models.essay_models import EssayItemModel, RewriteApprovalModel
from college_tracker.utils.base_types import CollegeId, EssayId, IsoTimestamp, StudentId, UserId

REGION = "us-west-1"
TABLE_NAME = "EssaysTable"

STUDENT = StudentId("student@example.com")


@pytest.fixture
def dynamodb_essays_table(aws_credentials):
    with mock_aws():
        dynamodb = boto3.resource("dynamodb", region_name=REGION)
        dynamodb.create_table(
            TableName=TABLE_NAME,
            KeySchema=[
                {"AttributeName": "userId", "KeyType": "HASH"},
                {"AttributeName": "essayId", "KeyType": "RANGE"},
            ],
            AttributeDefinitions=[
                {"AttributeName": "userId", "AttributeType": "S"},
                {"AttributeName": "essayId", "AttributeType": "S"},
            ],
            BillingMode="PAY_PER_REQUEST",
        )
        yield


@pytest.fixture
def essays_table(dynamodb_essays_table) -> EssaysTable:
    return EssaysTable(TABLE_NAME)


def make_essay(essay_id: str, updated_at: str, **overrides) -> EssayItemModel:
    fields = {
        "userId": STUDENT,
        "essayId": EssayId(essay_id),
        "title": f"Essay {essay_id}",
        "content": "Once upon a time.",
        "createdBy": UserId(STUDENT),
        "createdAt": IsoTimestamp("2025-01-01T00:00:00+00:00"),
        "updatedAt": IsoTimestamp(updated_at),
    }
    fields.update(overrides)
    return EssayItemModel(**fields)


def test_get_essay_not_exists(essays_table: EssaysTable):
    assert essays_table.get_essay(STUDENT, EssayId("missing")) is None


def test_save_and_get_essay_with_rewrite_history(essays_table: EssaysTable):
    approval = RewriteApprovalModel(
        instruction="Start in the moment",
        content="Once upon a time.",
        previousContent="It was a dark and stormy night.",
        approvedBy=UserId("counselor@example.com"),
        approvedByName="Ms. Rivera",
        approvedAt=IsoTimestamp("2025-02-01T00:00:00+00:00"),
    )
    essay = make_essay(
        "e1", "2025-02-01T00:00:00+00:00", wordLimit=650, wordCount=4, collegeId="c1", rewriteApprovals=[approval]
    )
    essays_table.save_essay(essay)

    fetched = essays_table.get_essay(STUDENT, EssayId("e1"))
    assert fetched == essay
    assert fetched.wordLimit == 650
    assert fetched.rewriteApprovals[0].previousContent == "It was a dark and stormy night."


def test_essays_listed_most_recently_updated_first(essays_table: EssaysTable):
    essays_table.save_essay(make_essay("old", "2025-02-01T00:00:00+00:00"))
    essays_table.save_essay(make_essay("new", "2025-03-01T00:00:00+00:00"))
    essays_table.save_essay(make_essay("other", "2025-04-01T00:00:00+00:00", userId=StudentId("x@example.com")))

    assert [e.essayId for e in essays_table.get_essays_for_user(STUDENT)] == ["new", "old"]


def test_delete_essays_for_college(essays_table: EssaysTable):
    essays_table.save_essay(make_essay("mit-1", "2025-02-01T00:00:00+00:00", collegeId="mit"))
    essays_table.save_essay(make_essay("mit-2", "2025-02-02T00:00:00+00:00", collegeId="mit"))
    essays_table.save_essay(make_essay("personal", "2025-02-03T00:00:00+00:00"))

    assert essays_table.delete_essays_for_college(STUDENT, CollegeId("mit")) == 2
    assert [e.essayId for e in essays_table.get_essays_for_user(STUDENT)] == ["personal"]
