"""
Unit tests for the error taxonomy.
"""

import pytest

from shared.errors import (
    ApiKeyError,
    DatabaseError,
    ErrorType,
    IncorrectUsageError,
    InvalidInputError,
    MalformedTokenError,
    NotFoundError,
    SigningError,
    UnauthorizedError,
    UnexpectedError,
    UnknownError,
)


class TestErrorTaxonomy:
    """Test cases for status codes and error types."""

    @pytest.mark.parametrize("error_class,status_code,error_type", [
        (UnknownError, 500, ErrorType.UNKNOWN),
        (IncorrectUsageError, 500, ErrorType.INCORRECT_USAGE),
        (SigningError, 500, ErrorType.SIGNING_ERROR),
        (DatabaseError, 500, ErrorType.DATABASE_ERROR),
        (InvalidInputError, 400, ErrorType.INVALID_INPUT),
        (MalformedTokenError, 401, ErrorType.MALFORMED_TOKEN),
        (UnauthorizedError, 403, ErrorType.UNAUTHORIZED),
        (NotFoundError, 404, ErrorType.NOT_FOUND),
    ])
    def test_status_and_type(self, error_class, status_code, error_type):
        error = error_class()

        assert isinstance(error, ApiKeyError)
        assert error.status_code == status_code
        assert error.error_type is error_type
        assert error.message

    @pytest.mark.parametrize("error_class", [IncorrectUsageError, SigningError, DatabaseError])
    def test_unexpected_failures_share_a_base(self, error_class):
        assert issubclass(error_class, UnexpectedError)

    @pytest.mark.parametrize("error_class", [InvalidInputError, MalformedTokenError, UnauthorizedError, NotFoundError])
    def test_client_failures_are_not_unexpected(self, error_class):
        assert not issubclass(error_class, UnexpectedError)

    def test_custom_message_and_details(self):
        error = NotFoundError("API key not found", details={"kid": "k1"})

        assert str(error) == "API key not found"
        assert error.details == {"kid": "k1"}


class TestErrorResponse:
    """Test cases for rendering error bodies."""

    def test_to_response(self):
        body = UnauthorizedError("Failed to verify token").to_response()

        assert body.model_dump(mode="json", exclude_none=True) == {
            "error": {"type": "unauthorized", "message": "Failed to verify token"}
        }

    def test_cause_is_opt_in(self):
        try:
            try:
                raise ValueError("bad signature")
            except ValueError as exc:
                raise UnauthorizedError("Failed to verify token") from exc
        except UnauthorizedError as error:
            hidden = error.to_response()
            shown = error.to_response(include_cause=True)

        assert hidden.error.cause is None
        assert "bad signature" in shown.error.cause

    def test_cause_absent_without_chained_exception(self):
        body = MalformedTokenError("Invalid token").to_response(include_cause=True)

        assert body.error.cause is None
