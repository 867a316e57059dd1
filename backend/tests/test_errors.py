import pytest

from backend.app.errors import Forbidden, InvalidInput, NotFound, Unauthorized, UpstreamFailure


@pytest.mark.parametrize(
    "error_cls, status_code, code",
    [
        (InvalidInput, 422, "invalid_input"),
        (NotFound, 404, "not_found"),
        (Unauthorized, 401, "unauthorized"),
        (Forbidden, 403, "forbidden"),
        (UpstreamFailure, 502, "upstream_failure"),
    ],
)
def test_errors_map_to_http_status(error_cls, status_code, code):
    exc = error_cls("Something went wrong", detail={"planId": "plan-1"}).to_http_exception()

    assert exc.status_code == status_code
    assert exc.detail == {"error": code, "message": "Something went wrong", "planId": "plan-1"}


def test_custom_code_keeps_status():
    error = InvalidInput("Bad move", code="invalid_transition")

    assert error.status_code == 422
    assert error.payload["error"] == "invalid_transition"
