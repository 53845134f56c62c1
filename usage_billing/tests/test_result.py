import pytest

from usage_billing.result import (
    Failure,
    ForbiddenFailure,
    MethodNotAllowedFailure,
    NotFoundFailure,
    ServiceFailure,
    Success,
    ValidationFailure,
    collect,
    is_failure,
    is_success,
    render_error_response,
    then,
    unwrap,
)


def test_then_short_circuits_and_keeps_the_same_failure():
    failure = Failure(ValidationFailure({"rate": ["invalid_value"]}))
    calls = []

    out = then(failure, lambda v: calls.append(v) or Success(v))

    assert out is failure
    assert calls == []
    assert then(Success(2), lambda v: Success(v * 3)) == Success(6)


def test_collect_returns_first_failure():
    first = Failure(NotFoundFailure("charge"))
    second = Failure(ForbiddenFailure("feature_unavailable"))

    assert collect([Success(1), first, second]) is first
    assert collect([Success(1), Success(2)]) == Success([1, 2])


def test_unwrap_raises_the_carried_failure():
    error = ServiceFailure("boom", "unexpected")

    with pytest.raises(ServiceFailure) as exc:
        unwrap(Failure(error))
    assert exc.value is error
    assert unwrap(Success("ok")) == "ok"
    assert is_success(Success(None)) and is_failure(Failure(error))


def test_render_error_response_maps_business_failures():
    assert render_error_response(NotFoundFailure("customer")) == {
        "status": 404,
        "error": "Not Found",
        "code": "customer_not_found",
    }
    assert render_error_response(ValidationFailure({"rate": ["invalid_value"]})) == {
        "status": 422,
        "error": "Unprocessable Entity",
        "code": "validation_errors",
        "error_details": {"rate": ["invalid_value"]},
    }
    assert render_error_response(ForbiddenFailure("premium_only"))["status"] == 403
    assert render_error_response(MethodNotAllowedFailure("invoice_not_draft")) == {
        "status": 405,
        "error": "Method Not Allowed",
        "code": "invoice_not_draft",
    }


def test_render_error_response_reraises_unexpected_failures():
    error = ServiceFailure("aggregation_crashed")

    with pytest.raises(ServiceFailure) as exc:
        render_error_response(error)
    assert exc.value is error


def test_validation_failure_str_lists_fields():
    assert str(ValidationFailure({"rate": ["a", "b"]})) == "validation_errors (rate: a, b)"
