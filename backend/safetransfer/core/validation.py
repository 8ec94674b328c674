"""
SafeTransfer Validation Engine

Semantic rules layered on top of sanitization: document format, age,
amount against the legal ceiling, password strength, and a security rule
for free text. Whole-form entry points aggregate every field error so the
UI can show all problems at once.

Validation is the authoritative gate for the ceiling. The clamp inside
sanitize_amount is only a display safeguard.
"""

import re
from datetime import date
from decimal import Decimal
from functools import lru_cache
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from ..constants import (
    CLIENT_FREE_TEXT_FIELDS,
    DOCUMENT_TYPES,
    MAX_DOCUMENT_NUMBER_LENGTH,
    MAX_NAME_LENGTH,
    MAX_PLAUSIBLE_AGE,
    SUPPORTED_LOCALES,
    TRANSFER_FREE_TEXT_FIELDS,
    TRANSFER_SYSTEMS,
    get_current_date,
)
from ..domain.compliance.entities import ValidationResult
from .config import Settings, TransferLimits, get_settings
from .sanitization import contains_dangerous_patterns, parse_amount

MESSAGES: Dict[str, Dict[str, str]] = {
    "document_number": {
        "en": "Invalid document number. Must contain {min_length}-{max_length} alphanumeric characters.",
        "es": "Número de documento inválido. Debe contener {min_length}-{max_length} caracteres alfanuméricos.",
        "it": "Numero di documento non valido. Deve contenere {min_length}-{max_length} caratteri alfanumerici.",
    },
    "email": {
        "en": "Invalid email. Please enter a valid email address.",
        "es": "Email inválido. Por favor, ingresa un email válido.",
        "it": "Email non valida. Inserisci un indirizzo email valido.",
    },
    "phone": {
        "en": "Invalid phone number. Must contain 8-25 digits.",
        "es": "Teléfono inválido. Debe contener 8-25 dígitos.",
        "it": "Numero di telefono non valido. Deve contenere 8-25 cifre.",
    },
    "fiscal_code": {
        "en": "Invalid fiscal code. Must have the correct Italian format.",
        "es": "Código fiscal inválido. Debe tener el formato italiano correcto.",
        "it": "Codice fiscale non valido. Deve avere il formato italiano corretto.",
    },
    "amount": {
        "en": "Invalid amount. Must be greater than 0 and not exceed €{ceiling}.",
        "es": "Monto inválido. Debe ser mayor a 0 y no exceder €{ceiling}.",
        "it": "Importo non valido. Deve essere maggiore di 0 e non superare €{ceiling}.",
    },
    "amount_over_ceiling": {
        "en": "Amount exceeds legal limit of €{ceiling}.",
        "es": "El monto supera el límite legal de €{ceiling}.",
        "it": "L'importo supera il limite legale di €{ceiling}.",
    },
    "window_exceeded": {
        "en": "This transfer exceeds the {window_days}-day limit of €{ceiling}.",
        "es": "Esta transferencia supera el límite de €{ceiling} en {window_days} días.",
        "it": "Questo trasferimento supera il limite di €{ceiling} in {window_days} giorni.",
    },
    "commission_amount": {
        "en": "Invalid commission. Must be 0 or more and not exceed the amount.",
        "es": "Comisión inválida. Debe ser 0 o más y no superar el monto.",
        "it": "Commissione non valida. Deve essere 0 o più e non superare l'importo.",
    },
    "name": {
        "en": "Invalid name. Must contain 2-150 characters.",
        "es": "Nombre inválido. Debe contener 2-150 caracteres.",
        "it": "Nome non valido. Deve contenere 2-150 caratteri.",
    },
    "date_of_birth": {
        "en": "Invalid date of birth. Client must be at least {min_age} years old.",
        "es": "Fecha de nacimiento inválida. El cliente debe ser mayor de {min_age} años.",
        "it": "Data di nascita non valida. Il cliente deve avere almeno {min_age} anni.",
    },
    "document_expiry": {
        "en": "The document has expired or the date is invalid.",
        "es": "El documento ha expirado o la fecha es inválida.",
        "it": "Il documento è scaduto o la data non è valida.",
    },
    "password": {
        "en": "Invalid password. Must have at least 8 characters, one uppercase, lowercase and number.",
        "es": "Contraseña inválida. Debe tener al menos 8 caracteres, una mayúscula, minúscula y número.",
        "it": "Password non valida. Deve avere almeno 8 caratteri, una maiuscola, minuscola e numero.",
    },
    "document_type": {
        "en": "Invalid document type.",
        "es": "Tipo de documento inválido.",
        "it": "Tipo di documento non valido.",
    },
    "transfer_system": {
        "en": "Please select a valid transfer system.",
        "es": "Selecciona un sistema de transferencia válido.",
        "it": "Seleziona un sistema di trasferimento valido.",
    },
    "destination_country": {
        "en": "Please select a destination country.",
        "es": "Selecciona un país de destino.",
        "it": "Seleziona un paese di destinazione.",
    },
    "security": {
        "en": "Potentially dangerous content detected. Please remove special characters.",
        "es": "Se detectó contenido potencialmente peligroso. Por favor, elimina caracteres especiales.",
        "it": "Rilevato contenuto potenzialmente pericoloso. Rimuovi i caratteri speciali.",
    },
}

EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+\-]+@[a-zA-Z0-9.\-]+\.[a-zA-Z]{2,}$")
PHONE_PATTERN = re.compile(r"^\+?[0-9\s\-()]{8,25}$")
FISCAL_CODE_PATTERN = re.compile(
    r"^[A-Z]{6}[0-9]{2}[A-Z][0-9]{2}[A-Z][0-9]{3}[A-Z]$", re.IGNORECASE
)
COUNTRY_CODE_PATTERN = re.compile(r"^[A-Z]{2}$", re.IGNORECASE)
ISO_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
PASSWORD_PATTERN = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d).{8,}$")

CLIENT_FORM_FIELDS = (
    "full_name",
    "document_type",
    "document_number",
    "date_of_birth",
    "document_expiry",
    "email",
    "phone",
    "fiscal_code",
) + tuple(f for f in CLIENT_FREE_TEXT_FIELDS if f != "full_name")

TRANSFER_FORM_FIELDS = (
    "amount",
    "commission_amount",
    "recipient_name",
    "transfer_system",
    "destination_country",
) + tuple(f for f in TRANSFER_FREE_TEXT_FIELDS if f != "recipient_name")

# Fields whose raw value may legitimately match an injection pattern
_SECURITY_EXEMPT_FIELDS = frozenset({"password"})


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def parse_iso_date(value: Any) -> Optional[date]:
    """Parse a real calendar date in YYYY-MM-DD form."""
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not ISO_DATE_PATTERN.match(value):
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        return None


def age_on(birth: date, today: date) -> int:
    """Whole years between birth and today."""
    before_birthday = (today.month, today.day) < (birth.month, birth.day)
    return today.year - birth.year - int(before_birthday)


class ValidationEngine:
    """
    Field rules and whole-form validation.

    Jurisdiction figures (ceiling, window, minimum age) come from
    configuration so other jurisdictions only need different settings.
    """

    def __init__(
        self,
        limits: Optional[TransferLimits] = None,
        min_document_length: int = 5,
        min_customer_age: int = 18,
        default_locale: str = "en",
        today: Callable[[], date] = get_current_date,
    ):
        self.limits = limits or TransferLimits()
        self.min_document_length = min_document_length
        self.min_customer_age = min_customer_age
        self.default_locale = default_locale
        self._today = today

        self._rules: Dict[str, Callable[[Any], bool]] = {
            "document_number": self.is_valid_document_number,
            "email": self.is_valid_email,
            "phone": self.is_valid_phone,
            "fiscal_code": self.is_valid_fiscal_code,
            "amount": self.is_valid_amount,
            "commission_amount": self.is_valid_commission,
            "full_name": self.is_valid_name,
            "recipient_name": self.is_valid_name,
            "date_of_birth": self.is_valid_date_of_birth,
            "document_expiry": self.is_not_expired,
            "password": self.is_valid_password,
            "document_type": self.is_valid_document_type,
            "transfer_system": self.is_valid_transfer_system,
            "destination_country": self.is_valid_country,
        }
        self._optional = frozenset(
            {"email", "phone", "fiscal_code", "document_expiry", "commission_amount"}
        )

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "ValidationEngine":
        """Build an engine from application settings."""
        settings = settings or get_settings()
        return cls(
            limits=settings.transfer_limits,
            min_document_length=settings.MIN_DOCUMENT_LENGTH,
            min_customer_age=settings.MIN_CUSTOMER_AGE,
            default_locale=settings.DEFAULT_LOCALE,
        )

    # Messages

    def resolve_locale(self, locale: Optional[str]) -> str:
        return locale if locale in SUPPORTED_LOCALES else self.default_locale

    def message(self, key: str, locale: Optional[str] = None) -> str:
        """Render a base-locale message with jurisdiction figures filled in."""
        template = MESSAGES[key][self.resolve_locale(locale)]
        return template.format(
            ceiling=self.limits.ceiling,
            window_days=self.limits.window_days,
            min_length=self.min_document_length,
            max_length=MAX_DOCUMENT_NUMBER_LENGTH,
            min_age=self.min_customer_age,
        )

    # Predicates

    def is_valid_document_number(self, value: Any) -> bool:
        if not isinstance(value, str):
            return False
        if not (self.min_document_length <= len(value) <= MAX_DOCUMENT_NUMBER_LENGTH):
            return False
        return re.fullmatch(r"[A-Z0-9\-]+", value, re.IGNORECASE) is not None

    def is_valid_email(self, value: Any) -> bool:
        return isinstance(value, str) and EMAIL_PATTERN.match(value) is not None

    def is_valid_phone(self, value: Any) -> bool:
        return isinstance(value, str) and PHONE_PATTERN.match(value) is not None

    def is_valid_fiscal_code(self, value: Any) -> bool:
        return isinstance(value, str) and FISCAL_CODE_PATTERN.match(value) is not None

    def is_valid_amount(self, value: Any) -> bool:
        amount = parse_amount(value)
        return amount is not None and Decimal("0") < amount <= self.limits.ceiling

    def is_valid_commission(self, value: Any) -> bool:
        commission = parse_amount(value)
        return commission is not None and commission >= 0

    def is_valid_name(self, value: Any) -> bool:
        if not isinstance(value, str) or len(value) > MAX_NAME_LENGTH:
            return False
        if len(re.sub(r"\s", "", value)) < 2:
            return False
        return all(c.isalpha() or c.isspace() or c in "-'." for c in value)

    def is_valid_date_of_birth(self, value: Any) -> bool:
        birth = parse_iso_date(value)
        if birth is None:
            return False
        today = self._today()
        if birth > today:
            return False
        age = age_on(birth, today)
        return self.min_customer_age <= age <= MAX_PLAUSIBLE_AGE

    def is_not_expired(self, value: Any) -> bool:
        expiry = parse_iso_date(value)
        return expiry is not None and expiry >= self._today()

    def is_valid_password(self, value: Any) -> bool:
        return isinstance(value, str) and PASSWORD_PATTERN.match(value) is not None

    def is_valid_document_type(self, value: Any) -> bool:
        return value in DOCUMENT_TYPES

    def is_valid_transfer_system(self, value: Any) -> bool:
        return value in TRANSFER_SYSTEMS

    def is_valid_country(self, value: Any) -> bool:
        return isinstance(value, str) and COUNTRY_CODE_PATTERN.match(value) is not None

    # Field validation

    def _check(
        self, field_name: str, value: Any, locale: Optional[str]
    ) -> Tuple[Optional[str], bool]:
        """Return (error, is_security_signal) for one field."""
        if (
            field_name not in _SECURITY_EXEMPT_FIELDS
            and isinstance(value, str)
            and contains_dangerous_patterns(value)
        ):
            return self.message("security", locale), True

        rule = self._rules.get(field_name)
        if rule is None:
            return None, False
        if field_name in self._optional and _is_blank(value):
            return None, False
        if rule(value):
            return None, False

        key = "name" if field_name in ("full_name", "recipient_name") else field_name
        if field_name == "amount":
            amount = parse_amount(value)
            if amount is not None and amount > self.limits.ceiling:
                key = "amount_over_ceiling"
        return self.message(key, locale), False

    def validate_field(
        self, field_name: str, value: Any, locale: Optional[str] = None
    ) -> Optional[str]:
        """
        Validate one field.

        Args:
            field_name: Form field name
            value: Sanitized value
            locale: Message locale, defaults to the base locale

        Returns:
            Error message, or None when the value is acceptable
        """
        error, _ = self._check(field_name, value, locale)
        return error

    def _validate_fields(
        self,
        data: Mapping[str, Any],
        fields: Iterable[str],
        locale: Optional[str],
    ) -> Tuple[Dict[str, str], List[str]]:
        errors: Dict[str, str] = {}
        security_fields: List[str] = []
        for field_name in fields:
            error, is_security = self._check(field_name, data.get(field_name), locale)
            if error:
                errors[field_name] = error
                if is_security:
                    security_fields.append(field_name)
        return errors, security_fields

    def validate_client_form(
        self, data: Mapping[str, Any], locale: Optional[str] = None
    ) -> ValidationResult:
        """Validate a whole customer form without short-circuiting."""
        errors, security_fields = self._validate_fields(
            data or {}, CLIENT_FORM_FIELDS, locale
        )
        return ValidationResult.from_errors(errors, tuple(security_fields))

    def validate_transfer_form(
        self, data: Mapping[str, Any], locale: Optional[str] = None
    ) -> ValidationResult:
        """Validate a whole transfer form without short-circuiting."""
        data = data or {}
        errors, security_fields = self._validate_fields(
            data, TRANSFER_FORM_FIELDS, locale
        )

        if "commission_amount" not in errors and "amount" not in errors:
            commission = parse_amount(data.get("commission_amount"))
            amount = parse_amount(data.get("amount"))
            if commission is not None and amount is not None and commission > amount:
                errors["commission_amount"] = self.message("commission_amount", locale)

        return ValidationResult.from_errors(errors, tuple(security_fields))

    def validate_patch(
        self, data: Mapping[str, Any], locale: Optional[str] = None
    ) -> ValidationResult:
        """Validate only the fields present in a partial update."""
        errors, security_fields = self._validate_fields(data or {}, list(data or {}), locale)
        return ValidationResult.from_errors(errors, tuple(security_fields))

    def validate_transfer_amount(
        self,
        amount: Any,
        current_used: Decimal = Decimal("0"),
        locale: Optional[str] = None,
    ) -> Optional[str]:
        """
        Check an amount against the absolute ceiling and rolling usage.

        Exceeding the ceiling is an error before rolling usage is considered.
        """
        parsed = parse_amount(amount)
        if parsed is None or parsed <= 0:
            return self.message("amount", locale)
        if parsed > self.limits.ceiling:
            return self.message("amount_over_ceiling", locale)
        if Decimal(current_used) + parsed > self.limits.ceiling:
            return self.message("window_exceeded", locale)
        return None


@lru_cache()
def get_validation_engine() -> ValidationEngine:
    """Get the engine built from application settings."""
    return ValidationEngine.from_settings()


def validate_field(
    field_name: str, value: Any, locale: Optional[str] = None
) -> Optional[str]:
    return get_validation_engine().validate_field(field_name, value, locale)


def validate_client_form(
    data: Mapping[str, Any], locale: Optional[str] = None
) -> ValidationResult:
    return get_validation_engine().validate_client_form(data, locale)


def validate_transfer_form(
    data: Mapping[str, Any], locale: Optional[str] = None
) -> ValidationResult:
    return get_validation_engine().validate_transfer_form(data, locale)
