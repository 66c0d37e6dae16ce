"""
Unit tests for entity schema validation and casting.

Tests cover:
- Scalar casting (numbers, booleans, dates, object ids)
- Required fields, defaults and custom messages
- Enum, range and length rules
- Cross-field validators (password confirmation, price discount)
- Partial updates and immutable fields
- Filter value casting for query strings
"""

from datetime import datetime, timezone

import pytest
from bson import ObjectId

from api.src.exceptions import CastError, ValidationError
from api.src.models.entities import REVIEW_SCHEMA, TOUR_SCHEMA, USER_SCHEMA
from api.src.models.schema import (
    BOOLEAN,
    DATE,
    INTEGER,
    NUMBER,
    OBJECT_ID,
    cast_scalar,
    to_object_id,
)


def valid_tour(**overrides):
    data = {
        "name": "The Sea Explorer",
        "duration": 7,
        "maxGroupSize": 15,
        "difficulty": "medium",
        "price": 497,
        "summary": "Exploring the jaw-dropping US east coast by foot and by boat",
        "imageCover": "tour-2-cover.jpg",
    }
    data.update(overrides)
    return data


# ============================================================================
# CASTING
# ============================================================================


class TestCastScalar:
    """Tests for scalar casting."""

    def test_number_from_string(self):
        """Test numeric strings become ints or floats."""
        assert cast_scalar(NUMBER, "500") == 500
        assert cast_scalar(NUMBER, "4.5") == 4.5

    def test_integer_rejects_fractions(self):
        """Test a fractional value is not an integer."""
        with pytest.raises(ValueError):
            cast_scalar(INTEGER, "2.5")

    def test_boolean_is_not_a_number(self):
        """Test booleans don't pass as numbers."""
        with pytest.raises(ValueError):
            cast_scalar(NUMBER, True)

    @pytest.mark.parametrize("raw,expected", [("true", True), ("0", False), ("No", False)])
    def test_boolean_from_string(self, raw, expected):
        """Test common boolean spellings."""
        assert cast_scalar(BOOLEAN, raw) is expected

    def test_date_from_iso_string_is_utc(self):
        """Test ISO dates (with Z suffix) become aware datetimes."""
        parsed = cast_scalar(DATE, "2021-04-25T09:00:00Z")

        assert parsed == datetime(2021, 4, 25, 9, 0, tzinfo=timezone.utc)

    def test_object_id_from_hex(self):
        """Test a 24-char hex string becomes an ObjectId."""
        oid = ObjectId()

        assert cast_scalar(OBJECT_ID, str(oid)) == oid

    def test_object_id_rejects_garbage(self):
        """Test a malformed id fails to cast."""
        with pytest.raises(ValueError):
            cast_scalar(OBJECT_ID, "abc")

    def test_to_object_id_raises_cast_error(self):
        """Test to_object_id reports the path and value."""
        with pytest.raises(CastError) as exc_info:
            to_object_id("abc")

        assert exc_info.value.message == "Invalid _id: abc"
        assert exc_info.value.status_code == 400


# ============================================================================
# CREATE VALIDATION
# ============================================================================


class TestValidateCreate:
    """Tests for full-document validation."""

    def test_valid_tour_gets_defaults(self):
        """Test defaults are applied on create."""
        cleaned = TOUR_SCHEMA.validate(valid_tour())

        assert cleaned["ratingsAverage"] == 4.5
        assert cleaned["ratingsQuantity"] == 0
        assert cleaned["secretTour"] is False
        assert isinstance(cleaned["createdAt"], datetime)

    def test_unknown_keys_are_dropped(self):
        """Test keys outside the schema never reach the store."""
        cleaned = TOUR_SCHEMA.validate(valid_tour(hacked=True))

        assert "hacked" not in cleaned

    def test_missing_required_fields_are_collected(self):
        """Test every missing required field is reported with its message."""
        with pytest.raises(ValidationError) as exc_info:
            TOUR_SCHEMA.validate({"name": "The Snow Adventurer"})

        errors = exc_info.value.errors
        assert errors["duration"] == "A tour must have a duration"
        assert errors["price"] == "A tour must have a price"
        assert exc_info.value.message.startswith("Invalid input data. ")

    def test_name_length_message(self):
        """Test the custom minimum length message."""
        with pytest.raises(ValidationError) as exc_info:
            TOUR_SCHEMA.validate(valid_tour(name="Short"))

        assert exc_info.value.errors == {"name": "A tour name must have more or equal then 10 characters"}

    def test_enum_violation(self):
        """Test difficulty must be one of the allowed values."""
        with pytest.raises(ValidationError) as exc_info:
            TOUR_SCHEMA.validate(valid_tour(difficulty="extreme"))

        assert exc_info.value.errors["difficulty"] == "Difficulty is either: easy, medium, difficult"

    def test_rating_range(self):
        """Test ratingsAverage must lie in [1, 5]."""
        with pytest.raises(ValidationError) as exc_info:
            TOUR_SCHEMA.validate(valid_tour(ratingsAverage=6))

        assert exc_info.value.errors["ratingsAverage"] == "Rating must be below 5.0"

    def test_discount_must_be_below_price(self):
        """Test the cross-field discount validator."""
        with pytest.raises(ValidationError) as exc_info:
            TOUR_SCHEMA.validate(valid_tour(price=100, priceDiscount=150))

        assert exc_info.value.errors["priceDiscount"] == "Discount price should be below regular price"

    def test_type_mismatch_is_a_validation_error(self):
        """Test an uncastable value is reported per field."""
        with pytest.raises(ValidationError) as exc_info:
            TOUR_SCHEMA.validate(valid_tour(price="cheap"))

        assert "price" in exc_info.value.errors

    def test_user_email_is_normalized(self):
        """Test emails are trimmed and lowercased."""
        cleaned = USER_SCHEMA.validate(
            {"name": "Leo", "email": "  Leo@Example.COM ", "password": "pass1234", "passwordConfirm": "pass1234"}
        )

        assert cleaned["email"] == "leo@example.com"
        assert cleaned["role"] == "user"
        assert cleaned["active"] is True

    def test_password_confirm_is_transient(self):
        """Test the confirmation is checked but never stored."""
        cleaned = USER_SCHEMA.validate(
            {"name": "Leo", "email": "leo@example.com", "password": "pass1234", "passwordConfirm": "pass1234"}
        )

        assert "passwordConfirm" not in cleaned

    def test_password_mismatch(self):
        """Test mismatched confirmation is rejected."""
        with pytest.raises(ValidationError) as exc_info:
            USER_SCHEMA.validate(
                {"name": "Leo", "email": "leo@example.com", "password": "pass1234", "passwordConfirm": "other123"}
            )

        assert exc_info.value.errors == {"passwordConfirm": "Passwords are not the same!"}

    def test_invalid_email(self):
        """Test the email format validator."""
        with pytest.raises(ValidationError) as exc_info:
            USER_SCHEMA.validate(
                {"name": "Leo", "email": "not-an-email", "password": "pass1234", "passwordConfirm": "pass1234"}
            )

        assert exc_info.value.errors == {"email": "Please provide a valid email"}


# ============================================================================
# PARTIAL VALIDATION
# ============================================================================


class TestValidatePartial:
    """Tests for update (partial) validation."""

    def test_only_present_fields_are_checked(self):
        """Test required fields absent from an update are not reported."""
        cleaned = TOUR_SCHEMA.validate({"price": "650"}, partial=True)

        assert cleaned == {"price": 650}

    def test_defaults_are_not_applied(self):
        """Test partial validation never injects defaults."""
        cleaned = TOUR_SCHEMA.validate({"duration": 3}, partial=True)

        assert "ratingsAverage" not in cleaned
        assert "createdAt" not in cleaned

    def test_immutable_fields_are_rejected(self):
        """Test system and immutable fields cannot be updated."""
        with pytest.raises(ValidationError) as exc_info:
            TOUR_SCHEMA.validate({"createdAt": "2020-01-01", "_id": "x"}, partial=True)

        assert set(exc_info.value.errors) == {"_id", "createdAt"}

    def test_cross_field_validator_sees_stored_document(self):
        """Test validators run against the merged current document."""
        with pytest.raises(ValidationError):
            TOUR_SCHEMA.validate({"priceDiscount": 600}, partial=True, current={"price": 500})


# ============================================================================
# FILTER CASTING
# ============================================================================


class TestCastFilterValue:
    """Tests for query-string value casting."""

    def test_numeric_field(self):
        """Test numeric filters are cast for comparison."""
        assert TOUR_SCHEMA.cast_filter_value("price", "500") == 500

    def test_reference_field(self):
        """Test reference filters are cast to ObjectId."""
        oid = ObjectId()

        assert REVIEW_SCHEMA.cast_filter_value("tour", str(oid)) == oid

    def test_id_field(self):
        """Test _id filters are cast to ObjectId."""
        oid = ObjectId()

        assert TOUR_SCHEMA.cast_filter_value("_id", str(oid)) == oid

    def test_undeclared_field_passes_through(self):
        """Test unknown fields keep their raw value."""
        assert TOUR_SCHEMA.cast_filter_value("nickname", "x") == "x"

    def test_bad_value_raises_cast_error(self):
        """Test an uncastable filter value raises CastError."""
        with pytest.raises(CastError) as exc_info:
            TOUR_SCHEMA.cast_filter_value("price", "abc")

        assert exc_info.value.message == "Invalid price: abc"
