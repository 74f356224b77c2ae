"""
Tests for the CLI interface.
"""
import os
import tempfile
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import yaml
from typer.testing import CliRunner

from timecraft.cli.main import app, EXIT_CODE_PASS, EXIT_CODE_FAIL
from timecraft.config.loader import RateLimitConfig
from timecraft.core.models import GenerationMethod, GenerationResult
from timecraft.core.rate_limiter import RateLimiter
from timecraft.storage.repository import InMemoryLedgerStore

runner = CliRunner()


@pytest.fixture
def config_path(monkeypatch):
    """Write a settings file pointing the ledger at a temp directory."""
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    with tempfile.TemporaryDirectory() as temp_dir:
        path = os.path.join(temp_dir, "config.yaml")
        with open(path, 'w', encoding='utf-8') as f:
            yaml.dump({"storage": {"path": os.path.join(temp_dir, "ledger.db")}}, f)
        yield path


@pytest.fixture
def mock_engine():
    """Mock engine construction for the generate command."""
    with patch('timecraft.cli.main.build_engine') as mock_build:
        engine = MagicMock()
        engine.rate_limiter = RateLimiter(RateLimitConfig(), InMemoryLedgerStore())
        mock_build.return_value = engine
        yield engine


class TestGenerateCommand:
    """Test narrative generation from the CLI."""

    def test_fallback_without_api_key(self, config_path):
        result = runner.invoke(app, [
            "generate", "call", "--subject", "Jane", "--goal", "discuss pricing", "--config", config_path
        ])

        assert result.exit_code == EXIT_CODE_PASS
        assert "(fallback)" in result.output
        assert "Telephone conference Jane regarding discuss pricing." in result.output

    def test_ai_result_displayed(self, mock_engine):
        mock_engine.generate_entry = AsyncMock(return_value=GenerationResult(
            output="Conferred with Jane regarding pricing strategy.",
            method=GenerationMethod.AI
        ))

        result = runner.invoke(app, ["generate", "call", "-s", "Jane", "-g", "pricing"])

        assert result.exit_code == EXIT_CODE_PASS
        assert "(ai)" in result.output
        assert "Conferred with Jane regarding pricing strategy." in result.output

    def test_rate_limit_notice(self, mock_engine):
        mock_engine.rate_limiter = RateLimiter(
            RateLimitConfig(max_requests_per_minute=1), InMemoryLedgerStore()
        )
        mock_engine.rate_limiter.log_request()
        mock_engine.generate_entry = AsyncMock(return_value=GenerationResult(
            output="Telephone conference Jane regarding pricing.",
            method=GenerationMethod.FALLBACK
        ))

        result = runner.invoke(app, ["generate", "call", "-s", "Jane", "-g", "pricing"])

        assert result.exit_code == EXIT_CODE_PASS
        assert "Rate limit: 1 requests per minute" in result.output
        assert "AI generation resumes in" in result.output

    def test_block_billing_warning(self, config_path):
        result = runner.invoke(app, [
            "generate", "call", "-s", "John", "-g", "Call John and draft the NDA", "--config", config_path
        ])

        assert result.exit_code == EXIT_CODE_PASS
        assert "Possible block billing" in result.output
        assert "1. Call John" in result.output
        assert "2. draft the NDA" in result.output

    def test_time_and_matter_shown(self, config_path):
        result = runner.invoke(app, [
            "generate", "research", "-s", "SAFE notes", "-g", "MFN clauses",
            "--time", "0.5", "--client-matter", "ACME-001", "--config", config_path
        ])

        assert result.exit_code == EXIT_CODE_PASS
        assert "Matter: ACME-001" in result.output
        assert "Time: 0.5 h" in result.output

    def test_unknown_activity_fails(self, config_path):
        result = runner.invoke(app, ["generate", "golf", "-s", "Jane", "-g", "network", "--config", config_path])

        assert result.exit_code == EXIT_CODE_FAIL
        assert "Invalid entry" in result.output

    def test_blank_goal_fails(self, config_path):
        result = runner.invoke(app, ["generate", "call", "-s", "Jane", "-g", "  ", "--config", config_path])
        assert result.exit_code == EXIT_CODE_FAIL

    def test_bad_time_increment_fails(self, config_path):
        result = runner.invoke(app, [
            "generate", "call", "-s", "Jane", "-g", "pricing", "--time", "0.25", "--config", config_path
        ])
        assert result.exit_code == EXIT_CODE_FAIL

    @pytest.mark.parametrize("time", ["nan", "inf"])
    def test_non_finite_time_fails(self, config_path, time):
        result = runner.invoke(app, [
            "generate", "call", "-s", "Jane", "-g", "pricing", "--time", time, "--config", config_path
        ])

        assert result.exit_code == EXIT_CODE_FAIL
        assert "time must be a finite number" in result.output

    def test_missing_config_fails(self):
        result = runner.invoke(app, [
            "generate", "call", "-s", "Jane", "-g", "pricing", "--config", "nonexistent.yaml"
        ])

        assert result.exit_code == EXIT_CODE_FAIL
        assert "Error loading config" in result.output


class TestUtilityCommands:
    """Test the text utility commands."""

    def test_split_detects_block_billing(self):
        result = runner.invoke(app, ["split", "Research statute then update memo"])

        assert result.exit_code == EXIT_CODE_PASS
        assert "2 activities" in result.output
        assert "1. Research statute" in result.output

    def test_split_single_activity(self):
        result = runner.invoke(app, ["split", "Reviewed the contract"])

        assert result.exit_code == EXIT_CODE_PASS
        assert "No block billing detected" in result.output

    def test_active_voice(self):
        result = runner.invoke(app, ["active-voice", "Reviewing the lease"])

        assert result.exit_code == EXIT_CODE_PASS
        assert "reviewed the lease" in result.output

    def test_activities_table(self):
        result = runner.invoke(app, ["activities"])

        assert result.exit_code == EXIT_CODE_PASS
        assert "drafting" in result.output
        assert "Researched" in result.output


class TestUsageCommands:
    """Test ledger statistics and reset."""

    def test_stats_empty_ledger(self, config_path):
        result = runner.invoke(app, ["stats", "--config", config_path])

        assert result.exit_code == EXIT_CODE_PASS
        assert "Last minute" in result.output
        assert "Estimated cost today: $0.0000" in result.output

    def test_stats_after_requests(self, config_path):
        from timecraft.config.loader import load_settings
        from timecraft.core.orchestrator import build_engine

        limiter = build_engine(load_settings(config_path), api_key="").rate_limiter
        limiter.log_request(1_000_000)

        result = runner.invoke(app, ["stats", "--config", config_path])

        assert "Tokens today: 1,000,000" in result.output
        assert "$0.3000" in result.output

    def test_reset_with_confirmation_flag(self, config_path):
        from timecraft.config.loader import load_settings
        from timecraft.core.orchestrator import build_engine

        build_engine(load_settings(config_path), api_key="").rate_limiter.log_request()

        result = runner.invoke(app, ["reset", "--yes", "--config", config_path])

        assert result.exit_code == EXIT_CODE_PASS
        assert "Usage ledger cleared" in result.output
        stats = build_engine(load_settings(config_path), api_key="").rate_limiter.get_usage_stats()
        assert stats.requests_last_day == 0

    def test_reset_declined(self, config_path):
        result = runner.invoke(app, ["reset", "--config", config_path], input="n\n")

        assert result.exit_code == EXIT_CODE_FAIL
        assert "Aborted" in result.output


class TestFormatting:
    """Test display helpers."""

    def test_format_currency(self):
        from timecraft.cli.main import _format_currency

        assert _format_currency(0.0) == "$0.0000"
        assert _format_currency(0.000195) == "$0.0002"
        assert _format_currency(1234.5) == "$1,234.5000"
