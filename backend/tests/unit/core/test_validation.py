"""
Unit tests for the validation engine.

Tests field rules, whole-form aggregation, the ceiling checks and
localized messages.
"""

from datetime import date
from decimal import Decimal

import pytest

from safetransfer.core.config import TransferLimits
from safetransfer.core.validation import (
    ValidationEngine,
    age_on,
    parse_iso_date,
    validate_client_form,
)


class TestFieldRules:
    """Test single-field predicates."""

    @pytest.mark.parametrize("value", ["AB123", "X-98765-Z", "A" * 30])
    def test_valid_document_numbers(self, engine, value):
        """Test 5-30 alphanumeric documents are accepted."""
        assert engine.is_valid_document_number(value)

    @pytest.mark.parametrize("value", ["AB12", "A" * 31, "AB 123", "AB_123", None])
    def test_invalid_document_numbers(self, engine, value):
        """Test short, long or malformed documents are rejected."""
        assert not engine.is_valid_document_number(value)

    def test_min_document_length_is_configurable(self, limits):
        """Test a jurisdiction can require longer documents."""
        strict = ValidationEngine(limits=limits, min_document_length=8)
        assert not strict.is_valid_document_number("AB12345")
        assert strict.is_valid_document_number("AB123456")

    def test_email_and_phone(self, engine):
        """Test email and phone formats."""
        assert engine.is_valid_email("user@example.com")
        assert not engine.is_valid_email("user@example")
        assert engine.is_valid_phone("+39 (02) 1234-5678")
        assert not engine.is_valid_phone("12345")

    def test_fiscal_code(self, engine):
        """Test the Italian fiscal code layout."""
        assert engine.is_valid_fiscal_code("RSSMRA85T10A562S")
        assert not engine.is_valid_fiscal_code("RSSMRA85T10A562")

    @pytest.mark.parametrize(
        "value,valid",
        [("1", True), ("999", True), ("999.00", True), ("999.01", False), ("0", False), ("-5", False), ("abc", False)],
    )
    def test_amount_against_ceiling(self, engine, value, valid):
        """Test amounts must be positive and within the ceiling."""
        assert engine.is_valid_amount(value) is valid

    def test_amount_ceiling_is_configurable(self):
        """Test another jurisdiction's ceiling is honoured."""
        engine = ValidationEngine(limits=TransferLimits(ceiling=Decimal("1500"), window_days=30))
        assert engine.is_valid_amount("1200")

    def test_names(self, engine):
        """Test names need two letters and only name characters."""
        assert engine.is_valid_name("Zoë O'Connor-Smith")
        assert not engine.is_valid_name("A")
        assert not engine.is_valid_name("R2D2")

    def test_date_of_birth(self, engine):
        """Test birth dates must be real and of an adult."""
        assert engine.is_valid_date_of_birth("2008-03-15")
        assert not engine.is_valid_date_of_birth("2008-03-16")
        assert not engine.is_valid_date_of_birth("1990-02-30")
        assert not engine.is_valid_date_of_birth("1890-01-01")
        assert not engine.is_valid_date_of_birth("15/03/1990")

    def test_minimum_age_can_be_disabled(self, limits):
        """Test a zero minimum age accepts minors."""
        engine = ValidationEngine(limits=limits, min_customer_age=0, today=lambda: date(2026, 3, 15))
        assert engine.is_valid_date_of_birth("2020-01-01")

    def test_document_expiry(self, engine):
        """Test documents expiring today are still valid."""
        assert engine.is_not_expired("2026-03-15")
        assert not engine.is_not_expired("2026-03-14")

    def test_password(self, engine):
        """Test password strength."""
        assert engine.is_valid_password("Secret123")
        assert not engine.is_valid_password("secret123")
        assert not engine.is_valid_password("Sh0rt")

    def test_choice_fields(self, engine):
        """Test document types, transfer systems and country codes."""
        assert engine.is_valid_document_type("id_card")
        assert not engine.is_valid_document_type("library_card")
        assert engine.is_valid_transfer_system("moneygram")
        assert not engine.is_valid_transfer_system("paypal")
        assert engine.is_valid_country("es")
        assert not engine.is_valid_country("ESP")


class TestValidateField:
    """Test validate_field messages."""

    def test_valid_field_has_no_error(self, engine):
        """Test None is returned for an acceptable value."""
        assert engine.validate_field("document_number", "AB123456") is None

    def test_unknown_field_has_no_rule(self, engine):
        """Test fields without a rule only get the security check."""
        assert engine.validate_field("address", "Via Roma 1") is None

    def test_over_ceiling_message(self, engine):
        """Test an over-ceiling amount names the legal limit."""
        assert engine.validate_field("amount", "1200") == "Amount exceeds legal limit of €999."

    def test_security_message_takes_precedence(self, engine):
        """Test a dangerous payload gets the security message."""
        error = engine.validate_field("notes", "<script>alert(1)</script>")
        assert error == engine.message("security")

    def test_password_is_exempt_from_security_check(self, engine):
        """Test passwords may contain characters that look like payloads."""
        assert engine.validate_field("password", "Abc12345--") is None

    @pytest.mark.parametrize(
        "locale,fragment",
        [("en", "Invalid email"), ("es", "Email inválido"), ("it", "Email non valida"), ("fr", "Invalid email"), (None, "Invalid email")],
    )
    def test_locales(self, engine, locale, fragment):
        """Test messages per locale, unknown locales fall back to the base one."""
        assert fragment in engine.validate_field("email", "nope", locale)

    def test_messages_use_configured_figures(self):
        """Test jurisdiction figures appear in messages."""
        engine = ValidationEngine(limits=TransferLimits(ceiling=Decimal("1500"), window_days=30))
        assert "€1500" in engine.message("amount_over_ceiling")
        assert "30" in engine.message("window_exceeded")


class TestClientForm:
    """Test whole customer-form validation."""

    def test_valid_form(self, engine, sample_client_form):
        """Test a complete valid form passes."""
        result = engine.validate_client_form(sample_client_form)
        assert result.is_valid
        assert result.errors == {}

    def test_aggregates_every_error(self, engine):
        """Test an invalid document and a short name yield exactly two errors."""
        result = engine.validate_client_form(
            {
                "full_name": "A",
                "document_type": "passport",
                "document_number": "AB",
                "date_of_birth": "1990-05-10",
            }
        )
        assert result.is_valid is False
        assert set(result.errors) == {"document_number", "full_name"}

    def test_optional_fields_skipped_when_blank(self, engine, sample_client_form):
        """Test blank optional fields are not errors."""
        form = dict(sample_client_form, email="", phone=None, fiscal_code="  ", document_expiry=None)
        assert engine.validate_client_form(form).is_valid

    def test_optional_fields_checked_when_present(self, engine, sample_client_form):
        """Test present optional fields must be valid."""
        form = dict(sample_client_form, email="bad", document_expiry="2020-01-01")
        result = engine.validate_client_form(form)
        assert set(result.errors) == {"email", "document_expiry"}

    def test_security_fields_reported(self, engine, sample_client_form):
        """Test free-text payloads are reported as security fields."""
        form = dict(sample_client_form, city="; drop table clients")
        result = engine.validate_client_form(form)
        assert result.errors == {"city": engine.message("security")}
        assert result.security_fields == ("city",)
        assert result.has_security_signal

    def test_result_is_immutable(self, engine):
        """Test results cannot be mutated."""
        result = engine.validate_client_form({})
        with pytest.raises(Exception):
            result.is_valid = True

    def test_module_level_entry_point(self):
        """Test the settings-backed entry point never raises on empty input."""
        result = validate_client_form({})
        assert result.is_valid is False
        assert "document_number" in result.errors


class TestTransferForm:
    """Test whole transfer-form validation."""

    def test_valid_form(self, engine, sample_transfer_form):
        """Test a complete valid form passes."""
        assert engine.validate_transfer_form(sample_transfer_form).is_valid

    def test_missing_required_fields(self, engine):
        """Test an empty form reports every required field."""
        result = engine.validate_transfer_form({})
        assert set(result.errors) == {
            "amount",
            "recipient_name",
            "transfer_system",
            "destination_country",
        }

    def test_commission_cannot_exceed_amount(self, engine, sample_transfer_form):
        """Test the commission is bounded by the amount."""
        form = dict(sample_transfer_form, amount="100", commission_amount="150")
        result = engine.validate_transfer_form(form)
        assert set(result.errors) == {"commission_amount"}

    def test_over_ceiling_amount_rejected(self, engine, sample_transfer_form):
        """Test an over-ceiling amount is rejected, never clamped."""
        result = engine.validate_transfer_form(dict(sample_transfer_form, amount="1000"))
        assert result.errors["amount"] == engine.message("amount_over_ceiling")


class TestTransferAmount:
    """Test the rolling-window amount check."""

    def test_within_window(self, engine):
        """Test an amount that fits the remaining capacity."""
        assert engine.validate_transfer_amount("450", Decimal("549")) is None

    def test_window_exceeded(self, engine):
        """Test usage plus amount above the ceiling."""
        assert engine.validate_transfer_amount("500", Decimal("549")) == engine.message("window_exceeded")

    def test_ceiling_checked_before_usage(self, engine):
        """Test the absolute ceiling error wins over the window error."""
        assert engine.validate_transfer_amount("1000", Decimal("549")) == engine.message("amount_over_ceiling")

    def test_non_positive(self, engine):
        """Test zero and garbage are invalid amounts."""
        assert engine.validate_transfer_amount(0) == engine.message("amount")
        assert engine.validate_transfer_amount("abc") == engine.message("amount")


class TestDateHelpers:
    """Test date helpers."""

    def test_parse_iso_date(self):
        """Test only real YYYY-MM-DD dates parse."""
        assert parse_iso_date("2024-02-29") == date(2024, 2, 29)
        assert parse_iso_date("2023-02-29") is None
        assert parse_iso_date("2024-2-9") is None
        assert parse_iso_date(date(2024, 1, 1)) == date(2024, 1, 1)

    def test_age_on(self):
        """Test age counts whole years."""
        assert age_on(date(2000, 3, 16), date(2026, 3, 15)) == 25
        assert age_on(date(2000, 3, 15), date(2026, 3, 15)) == 26
