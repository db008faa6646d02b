import re
from dataclasses import dataclass, field

from foodcrawl.services.crawler.base import CandidateProduct
from foodcrawl.utils.nutrients import MACRO_FIELDS

_DIGITS = re.compile(r"[0-9]+")
_HTTP_URL = re.compile(r"^https?://[^\s/$.?#][^\s]*$", re.I)

BRAND_MAX = 100
NAME_MAX = 255
ADDITIVES_MAX = 1000
IMAGE_URL_MAX = 500


@dataclass
class ValidationResult:
    valid: bool
    errors: list[str] = field(default_factory=list)


def ean13_check_digit(first_twelve: str) -> int:
    """Check digit for the first 12 digits, weights 1,3,1,3,... from the left."""
    total = sum(int(d) * (1 if i % 2 == 0 else 3) for i, d in enumerate(first_twelve))
    return (10 - total % 10) % 10


def is_valid_ean13(ean: str) -> bool:
    if len(ean) != 13 or not ean.isdigit():
        return False
    return ean13_check_digit(ean[:12]) == int(ean[12])


class ProductValidator:
    """Rule engine deciding whether a candidate may enter the moderation queue.

    Every rule runs; errors are collected rather than short-circuited so the
    caller can log all violations of a record at once.
    """

    def validate(self, candidate: CandidateProduct) -> ValidationResult:
        errors: list[str] = []
        errors.extend(self._check_external_id(candidate.external_id))
        errors.extend(self._check_text("brand", candidate.brand, BRAND_MAX, required=True))
        errors.extend(self._check_text("name", candidate.name, NAME_MAX, required=True))

        macros_numeric = True
        for name in MACRO_FIELDS:
            field_errors = self._check_percentage(name, getattr(candidate, name))
            if field_errors:
                errors.extend(field_errors)
                if any("must be a number" in e for e in field_errors):
                    macros_numeric = False

        if macros_numeric and candidate.macro_sum > 100:
            errors.append(
                f"Nutritional values sum exceeds 100% ({candidate.macro_sum:g})"
            )

        if candidate.additives is not None:
            errors.extend(
                self._check_text("additives", candidate.additives, ADDITIVES_MAX)
            )
        if candidate.image_url is not None:
            errors.extend(self._check_image_url(candidate.image_url))

        return ValidationResult(valid=not errors, errors=errors)

    def _check_external_id(self, external_id: str | None) -> list[str]:
        if not external_id:
            return ["external_id is required"]
        errors = []
        if not _DIGITS.fullmatch(external_id):
            errors.append("external_id must contain digits only")
        if not 8 <= len(external_id) <= 13:
            errors.append("external_id must be 8 to 13 digits long")
        if len(external_id) == 13 and external_id.isdigit() and not is_valid_ean13(external_id):
            errors.append("Invalid EAN-13 checksum")
        return errors

    @staticmethod
    def _check_text(
        name: str, value: str | None, max_length: int, required: bool = False
    ) -> list[str]:
        if value is None or (isinstance(value, str) and not value.strip()):
            return [f"{name} is required"] if required else []
        if not isinstance(value, str):
            return [f"{name} must be a string"]
        if len(value) > max_length:
            return [f"{name} must not exceed {max_length} characters"]
        return []

    @staticmethod
    def _check_percentage(name: str, value) -> list[str]:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return [f"{name} must be a number"]
        if value != value:  # NaN
            return [f"{name} must be a number"]
        if value < 0:
            return [f"{name} must be at least 0"]
        if value > 100:
            return [f"{name} must not exceed 100"]
        return []

    @staticmethod
    def _check_image_url(url: str) -> list[str]:
        errors = []
        if len(url) > IMAGE_URL_MAX:
            errors.append(f"image_url must not exceed {IMAGE_URL_MAX} characters")
        if not _HTTP_URL.match(url):
            errors.append("image_url must be an absolute http(s) URL")
        return errors
