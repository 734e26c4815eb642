"""
Pytest configuration and fixtures for all tests.

This file contains fixtures that are automatically available to all test files.
"""

import os
import typing

import pytest

from college_tracker.dynamodb.secrets_table import SecretsTable


@pytest.fixture(scope="session", autouse=True)
def setup_test_environment():
    """
    Sets up environment variables required for all tests.

    Runs once per test session (autouse=True) and sets the variables the application
    reads through utils.aws_env_vars.
    """
    # AWS Configuration
    os.environ["AWS_REGION"] = "us-west-1"

    # DynamoDB Table Names
    os.environ["USERS_TABLE_NAME"] = "test-users-table"
    os.environ["COLLABORATOR_LINKS_TABLE_NAME"] = "test-collaborator-links-table"
    os.environ["TASKS_TABLE_NAME"] = "test-tasks-table"
    os.environ["ESSAYS_TABLE_NAME"] = "test-essays-table"
    os.environ["COLLEGES_TABLE_NAME"] = "test-colleges-table"
    os.environ["SECRETS_TABLE_NAME"] = "test-secrets-table"

    # Google OAuth Configuration
    os.environ["GOOGLE_CLIENT_ID"] = "test-google-client-id.apps.googleusercontent.com"

    yield


@pytest.fixture(autouse=True)
def clear_secrets_cache() -> typing.Iterator[None]:
    """SecretsTable caches per process, so each test starts from an empty cache."""
    SecretsTable.clear_cache()
    yield
    SecretsTable.clear_cache()


@pytest.fixture(scope="function")
def aws_credentials() -> typing.Iterator[None]:
    """
    Mocks AWS credentials for moto (AWS mocking library).

    Used by the DynamoDB table tests that run inside moto's mock_aws context.
    """
    os.environ["AWS_ACCESS_KEY_ID"] = "testing"
    os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
    os.environ["AWS_SECURITY_TOKEN"] = "testing"
    os.environ["AWS_SESSION_TOKEN"] = "testing"
    os.environ["AWS_DEFAULT_REGION"] = "us-west-1"
    yield
    # Clean up after each test
    del os.environ["AWS_ACCESS_KEY_ID"]
    del os.environ["AWS_SECRET_ACCESS_KEY"]
    del os.environ["AWS_SECURITY_TOKEN"]
    del os.environ["AWS_SESSION_TOKEN"]
    del os.environ["AWS_DEFAULT_REGION"]
