import pytest

from exam_portal.utils.passwords import (
    is_valid_email,
    normalize_email,
    password_errors,
    secret_errors,
)


def test_strong_password_has_no_errors():
    assert password_errors("Passw0rd!") == []


@pytest.mark.parametrize(
    "password, expected",
    [
        ("Sh0rt!", "Password must be at least 8 characters long"),
        ("A" * 20 + "a1!xyz", "Password must be no more than 24 characters long"),
        ("passw0rd!", "Password must contain at least one uppercase letter"),
        ("PASSW0RD!", "Password must contain at least one lowercase letter"),
        ("Password!", "Password must contain at least one number"),
        ("Passw0rdd", "Password must contain at least one special character"),
    ],
)
def test_each_rule_reports_its_own_message(password, expected):
    assert expected in password_errors(password)


def test_non_string_password_fails_every_rule():
    assert len(password_errors(None)) == 5


def test_secret_must_be_six_digits():
    assert secret_errors("123456") == []
    assert "Secret must be 6 numbers long" in secret_errors("12345")
    assert "Secret must be a number" in secret_errors("12345a")


def test_email_helpers():
    assert is_valid_email("ada@example.com")
    assert not is_valid_email("ada@example")
    assert not is_valid_email("no at sign.com")
    assert normalize_email("  Ada@Example.COM ") == "ada@example.com"
    assert normalize_email(None) == ""
