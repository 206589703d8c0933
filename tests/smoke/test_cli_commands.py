"""
Smoke Tests for CLI Commands.

These tests verify that CLI commands run without errors and produce output.
They don't validate correctness deeply - just that commands work.

Usage:
    pytest tests/smoke/test_cli_commands.py -v
    pytest tests/smoke/test_cli_commands.py -v -m smoke
"""

import os
import subprocess
import sys
from pathlib import Path

import pytest

from src.analytics.models import ProblemAttempt, ProblemStats
from src.persistence.emergency import EmergencySnapshot, EmergencySnapshotStore
from src.persistence.kv_store import FileKeyValueStore

# Mark all tests in this module as smoke tests
pytestmark = pytest.mark.smoke

# Project root
PROJECT_ROOT = Path(__file__).parent.parent.parent


def run_cli_command(command: str, emergency_dir: Path, timeout: int = 30) -> tuple[int, str, str]:
    """
    Run a CLI command and return exit code, stdout, stderr.

    Args:
        command: The command to run (after 'python -m src.cli.analytics_cli')
        emergency_dir: Snapshot directory for this run
        timeout: Maximum time to wait

    Returns:
        Tuple of (exit_code, stdout, stderr)
    """
    full_command = f"{sys.executable} -m src.cli.analytics_cli {command}"
    env = {
        **os.environ,
        "EMERGENCY_DIR": str(emergency_dir),
        "SUPABASE_URL": "",
        "SUPABASE_ANON_KEY": "",
        "COLUMNS": "200",
    }

    result = subprocess.run(
        full_command,
        shell=True,
        cwd=PROJECT_ROOT,
        capture_output=True,
        text=True,
        timeout=timeout,
        env=env,
    )

    return result.returncode, result.stdout, result.stderr


def write_snapshot(directory: Path, user_id: str = "user-123") -> None:
    EmergencySnapshotStore(FileKeyValueStore(directory)).save(
        EmergencySnapshot(
            user_id=user_id,
            stats=ProblemStats(user_id=user_id),
            pending_attempts=[
                ProblemAttempt(
                    problem_id="p1",
                    topic="Algebra",
                    difficulty=2.0,
                    source="AMC 10",
                    is_correct=True,
                    time_spent=30,
                )
            ],
        )
    )


class TestCLIHelp:
    """Test that help commands work."""

    def test_main_help(self, tmp_path):
        """Main help should list every command."""
        code, stdout, stderr = run_cli_command("--help", tmp_path)

        assert code == 0, f"Help failed: {stderr}"
        for command in ("summary", "pending", "recover", "clear-snapshots"):
            assert command in stdout


class TestSnapshotCommands:
    """Test the local snapshot commands."""

    def test_pending_empty(self, tmp_path):
        code, stdout, stderr = run_cli_command("pending", tmp_path)

        assert code == 0, f"pending failed: {stderr}"
        assert "No emergency snapshots" in stdout

    def test_pending_lists_snapshot(self, tmp_path):
        write_snapshot(tmp_path)

        code, stdout, stderr = run_cli_command("pending", tmp_path)

        assert code == 0, f"pending failed: {stderr}"
        assert "user-123" in stdout

    def test_clear_snapshots(self, tmp_path):
        write_snapshot(tmp_path)

        code, stdout, stderr = run_cli_command("clear-snapshots --yes", tmp_path)

        assert code == 0, f"clear-snapshots failed: {stderr}"
        assert "Removed 1" in stdout
        assert list(tmp_path.glob("*.json")) == []


class TestRemoteCommands:
    """Remote commands refuse to run without Supabase settings."""

    def test_summary_requires_supabase(self, tmp_path):
        code, stdout, _ = run_cli_command("summary user-123 --id-token tok", tmp_path)

        assert code == 1
        assert "not configured" in stdout
