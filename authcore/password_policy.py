"""Password complexity policy."""

from __future__ import annotations

import re
from dataclasses import dataclass

from authcore.config import AuthSettings
from authcore.exceptions import ValidationFailed

_SPECIAL = re.compile(r"[!@#$%^&*()_+\-=\[\]{};':\"\\|,.<>/?]")


@dataclass(frozen=True)
class PasswordPolicy:
    enabled: bool = False
    min_length: int = 8
    require_uppercase: bool = False
    require_lowercase: bool = False
    require_number: bool = False
    require_special: bool = False

    @classmethod
    def from_settings(cls, settings: AuthSettings) -> "PasswordPolicy":
        return cls(
            enabled=settings.PASSWORD_POLICY_ENABLED,
            min_length=settings.PASSWORD_MIN_LENGTH,
            require_uppercase=settings.PASSWORD_REQUIRE_UPPERCASE,
            require_lowercase=settings.PASSWORD_REQUIRE_LOWERCASE,
            require_number=settings.PASSWORD_REQUIRE_NUMBER,
            require_special=settings.PASSWORD_REQUIRE_SPECIAL,
        )

    def validate(self, password: str) -> list[str]:
        """Return the rules ``password`` breaks; empty when it is acceptable."""
        errors = []
        if len(password) < self.min_length:
            errors.append(f"Password must be at least {self.min_length} characters")
        if not self.enabled:
            return errors

        if self.require_uppercase and not re.search(r"[A-Z]", password):
            errors.append("Password must contain at least one uppercase letter")
        if self.require_lowercase and not re.search(r"[a-z]", password):
            errors.append("Password must contain at least one lowercase letter")
        if self.require_number and not re.search(r"[0-9]", password):
            errors.append("Password must contain at least one number")
        if self.require_special and not _SPECIAL.search(password):
            errors.append("Password must contain at least one special character")
        return errors

    def enforce(self, password: str, field: str = "password") -> None:
        errors = self.validate(password)
        if errors:
            raise ValidationFailed({field: errors})

    def requirements(self) -> list[str]:
        requirements = [f"At least {self.min_length} characters"]
        if not self.enabled:
            return requirements
        if self.require_uppercase:
            requirements.append("One uppercase letter")
        if self.require_lowercase:
            requirements.append("One lowercase letter")
        if self.require_number:
            requirements.append("One number")
        if self.require_special:
            requirements.append("One special character")
        return requirements
