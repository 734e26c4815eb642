import json

from college_tracker.utils.apig_utils import (
    ErrorCode,
    create_error_response,
    format_lambda_response,
    get_method,
    get_path,
    get_query_string_parameters,
    get_user_id_from_event,
)

ALLOWED_METHODS = "OPTIONS,GET,POST,PUT,PATCH,DELETE"


def test_get_method_1() -> None:
    event = {"requestContext": {"http": {"method": "PATCH"}}}
    assert get_method(event) == "PATCH"


def test_get_method_2() -> None:
    event = {"requestContext": {}}
    assert get_method(event) == "UNKNOWN"


def test_get_path() -> None:
    assert get_path({"requestContext": {"http": {"path": "/collaboration/links"}}}) == "/collaboration/links"
    assert get_path({}) == ""


def test_get_query_string_parameters_null() -> None:
    # API Gateway sends null when there is no query string
    assert get_query_string_parameters({"queryStringParameters": None}) == {}
    assert get_query_string_parameters({}) == {}


def test_get_query_string_parameters_values() -> None:
    event = {"queryStringParameters": {"studentId": "kid@example.com"}}
    assert get_query_string_parameters(event).get("studentId") == "kid@example.com"


def test_get_user_id_from_event_1() -> None:
    event = {"requestContext": {"authorizer": {"lambda": {"sub": "student@example.com"}}}}

    assert get_user_id_from_event(event) == "student@example.com"


def test_get_user_id_from_event_2() -> None:
    event = {"requestContext": {}}

    assert get_user_id_from_event(event) is None


def test_format_lambda_response_1() -> None:
    ret = format_lambda_response(200, {"hey": "there"})
    assert ret["statusCode"] == 200
    assert len(ret["headers"]) == 4
    assert ret["headers"]["Content-Type"] == "application/json"
    assert ret["headers"]["Access-Control-Allow-Origin"] == "*"
    assert (
        ret["headers"]["Access-Control-Allow-Headers"]
        == "Content-Type,Authorization,X-Amz-Date,X-Api-Key,X-Amz-Security-Token"
    )
    assert ret["headers"]["Access-Control-Allow-Methods"] == ALLOWED_METHODS
    assert ret["body"] == '{"hey": "there"}'


def test_format_lambda_response_2() -> None:
    ret = format_lambda_response(200, None, additional_headers={"hi": "you"})
    assert ret["statusCode"] == 200
    assert len(ret["headers"]) == 5
    assert ret["headers"]["hi"] == "you"
    assert ret["body"] is None


def test_format_lambda_response_disallowed_origin() -> None:
    ret = format_lambda_response(200, {"hey": "there"}, event={"headers": {"origin": "evil.com"}})
    assert ret["headers"]["Access-Control-Allow-Origin"] == "null"


def test_format_lambda_response_allowed_origins() -> None:
    for origin in ["https://example.github.io", "http://localhost:5173", "http://127.0.0.1:3000"]:
        ret = format_lambda_response(200, {}, event={"headers": {"origin": origin}})
        assert ret["headers"]["Access-Control-Allow-Origin"] == origin


def test_create_error_response_1() -> None:
    response = create_error_response(ErrorCode.VALIDATION_ERROR)

    assert response["statusCode"] == 400
    body = json.loads(response["body"])
    assert body["message"] == "Invalid request data"
    assert body["errorCode"] == "VALIDATION_ERROR"
    assert "details" not in body
    assert "Access-Control-Allow-Origin" in response["headers"]


def test_create_error_response_2() -> None:
    response = create_error_response(ErrorCode.AUTHORIZATION_FAILED, "Missing required permission")

    assert response["statusCode"] == 403
    body = json.loads(response["body"])
    assert body["message"] == "Missing required permission"
    assert body["errorCode"] == "AUTHORIZATION_FAILED"


def test_create_error_response_with_details() -> None:
    details = [{"loc": ["title"], "msg": "Field required", "type": "missing"}]
    response = create_error_response(ErrorCode.VALIDATION_ERROR, details=details)

    body = json.loads(response["body"])
    assert body["details"] == details


def test_create_error_response_every_code() -> None:
    test_cases = [
        (ErrorCode.VALIDATION_ERROR, 400),
        (ErrorCode.AUTHENTICATION_FAILED, 401),
        (ErrorCode.AUTHORIZATION_FAILED, 403),
        (ErrorCode.RESOURCE_NOT_FOUND, 404),
        (ErrorCode.METHOD_NOT_ALLOWED, 405),
        (ErrorCode.RATE_LIMIT_EXCEEDED, 429),
        (ErrorCode.INTERNAL_ERROR, 500),
        (ErrorCode.AI_SERVICE_UNAVAILABLE, 503),
    ]

    for error_code, expected_status in test_cases:
        response = create_error_response(error_code)
        assert response["statusCode"] == expected_status
        body = json.loads(response["body"])
        assert body["errorCode"] == error_code.name
        assert body["message"] == error_code.default_message


def test_error_code_from_status_code() -> None:
    assert ErrorCode.from_status_code(400) is ErrorCode.VALIDATION_ERROR
    assert ErrorCode.from_status_code(401) is ErrorCode.AUTHENTICATION_FAILED
    assert ErrorCode.from_status_code(403) is ErrorCode.AUTHORIZATION_FAILED
    assert ErrorCode.from_status_code(418) is ErrorCode.INTERNAL_ERROR
