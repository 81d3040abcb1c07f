"""
Tests for the deploy-time environment check script.
"""
import os
import sys

REPO_ROOT = os.path.dirname(os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))
sys.path.insert(0, os.path.join(REPO_ROOT, "scripts"))

from check_env import check_environment, mask  # noqa: E402


def test_all_required_present():
    ok, lines = check_environment({
        "SECRET_KEY": "x" * 40,
        "ANTHROPIC_API_KEY": "test-anthropic-key",
        "DATABASE_URL": "sqlite://",
    })
    assert ok
    assert not any("[MISSING]" in line for line in lines)


def test_missing_required():
    ok, lines = check_environment({"SECRET_KEY": "x" * 40})
    assert not ok
    assert "  [MISSING] ANTHROPIC_API_KEY" in lines
    assert "  [MISSING] DATABASE_URL or POSTGRES_PASSWORD" in lines


def test_either_database_setting_satisfies_the_group():
    ok, _ = check_environment({
        "SECRET_KEY": "x" * 40,
        "ANTHROPIC_API_KEY": "test-anthropic-key",
        "POSTGRES_PASSWORD": "pw",
    })
    assert ok


def test_secrets_are_masked():
    assert mask("ANTHROPIC_API_KEY", "test-anthropic-key") == "test..."
    assert mask("SECRET_KEY", "short") == "***"
    assert mask("API_BASE_URL", "https://api.example.com") == "https://api.example.com"
