"""Field declarations for the forms the booking app shows."""

from typing import List

from services.validation_rules import (
    FieldConfig,
    email,
    matches,
    max_length,
    min_length,
    pattern,
    phone,
    required,
)


PASSWORD_MIN_LENGTH = 6
NOT_BLANK = r"\S"  # at least one non-whitespace character


def guest_details_fields() -> List[FieldConfig]:
    """Contact details collected on the booking wizard's details step."""
    return [
        FieldConfig(
            "firstName",
            label="First name",
            rules=[required("First name is required"), pattern(NOT_BLANK, "First name is required")],
        ),
        FieldConfig(
            "lastName",
            label="Last name",
            rules=[required("Last name is required"), pattern(NOT_BLANK, "Last name is required")],
        ),
        FieldConfig(
            "email",
            label="Email",
            rules=[required("Email is required"), email("Email is not valid")],
        ),
        FieldConfig(
            "phone",
            label="Phone",
            rules=[required("Phone is required"), phone("Phone is not valid")],
        ),
        FieldConfig("specialRequests", label="Special requests", rules=[max_length(500)]),
    ]


def _new_password_fields() -> List[FieldConfig]:
    return [
        FieldConfig(
            "newPassword",
            label="New password",
            rules=[
                required("New password is required"),
                min_length(PASSWORD_MIN_LENGTH, f"At least {PASSWORD_MIN_LENGTH} characters"),
            ],
            dependencies=["confirmPassword"],
        ),
        FieldConfig(
            "confirmPassword",
            label="Confirm password",
            rules=[
                required("Password confirmation is required"),
                matches("newPassword", "Passwords do not match"),
            ],
        ),
    ]


def reset_password_fields() -> List[FieldConfig]:
    return _new_password_fields()


def change_password_fields() -> List[FieldConfig]:
    current = FieldConfig(
        "currentPassword",
        label="Current password",
        rules=[required("Current password is required")],
    )
    return [current] + _new_password_fields()


def profile_fields() -> List[FieldConfig]:
    # Phone is optional on the profile, but must be well formed when given
    return [
        FieldConfig("firstName", label="First name", rules=[required("First name is required")]),
        FieldConfig("lastName", label="Last name", rules=[required("Last name is required")]),
        FieldConfig(
            "email",
            label="Email",
            rules=[required("Email is required"), email("Email is not valid")],
        ),
        FieldConfig("phone", label="Phone", rules=[phone("Phone is not valid")]),
    ]


def login_fields() -> List[FieldConfig]:
    return [
        FieldConfig(
            "email",
            label="Email",
            rules=[required("Email is required"), email("Email is not valid")],
        ),
        FieldConfig("password", label="Password", rules=[required("Password is required")]),
    ]
