"""
Tests for the command line entry point.

## Test Perspectives Table

| Case ID | Input / Precondition | Perspective (Equivalence / Boundary) | Expected Result | Notes |
|---------|---------------------|---------------------------------------|-----------------|-------|
| TC-CLI-N-01 | No argument | Equivalence – default | Default site decoded | |
| TC-CLI-N-02 | https:// URL | Equivalence – normal | Backup runs, exit 0 | |
| TC-CLI-N-03 | http:// URL with options | Equivalence – normal | Options forwarded | |
| TC-CLI-A-01 | ftp:// or bare host | Abnormal – invalid | Exit 2, no backup | Before any network |
| TC-CLI-A-02 | Backup with failures | Abnormal – partial | Exit 1 | |
| TC-CLI-A-03 | Browser launch fails | Abnormal – fatal | Exit 1, error printed | |
"""

from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from sitemirror.crawler.orchestrator import BackupResult
from sitemirror.crawler.session import LinkKind, PageResult
from sitemirror.main import main, resolve_site, run_backup
from sitemirror.utils.errors import BrowserLaunchError, InvalidCliArgumentError, MirrorErrorCode

pytestmark = pytest.mark.unit


class TestResolveSite:
    """Tests for resolve_site()."""

    @pytest.mark.parametrize("arg", [None, ""])
    def test_default_site(self, arg) -> None:
        """Test missing argument falls back to the default site (TC-CLI-N-01)."""
        assert resolve_site(arg) == "https://qanon.pub"

    @pytest.mark.parametrize("arg", ["https://example.com", "http://example.com/blog/"])
    def test_valid_url(self, arg: str) -> None:
        assert resolve_site(arg) == arg

    @pytest.mark.parametrize("arg", ["ftp://example.com", "example.com", "HTTPS//example.com"])
    def test_invalid_url(self, arg: str) -> None:
        with pytest.raises(InvalidCliArgumentError) as exc_info:
            resolve_site(arg)

        assert exc_info.value.code == MirrorErrorCode.INVALID_CLI_ARGUMENT
        assert exc_info.value.message == (
            f"{arg} is not a valid website. Must start with 'http://' or 'https://'"
        )


class TestMain:
    """Tests for main()."""

    def test_invalid_argument_exits_2(self, capsys) -> None:
        """Test invalid URL exits before any backup work (TC-CLI-A-01)."""
        # Given: A non-http argument
        with (
            patch("sitemirror.main.run_backup", new_callable=AsyncMock) as run,
            patch("sitemirror.main.configure_logging") as configure,
        ):
            # When: Running the CLI
            code = main(["ftp://example.com"])

        # Then: Exit 2, message printed, nothing started
        assert code == 2
        assert "ftp://example.com is not a valid website" in capsys.readouterr().out
        run.assert_not_called()
        configure.assert_not_called()

    def test_valid_argument_runs_backup(self, capsys) -> None:
        """Test a valid URL starts the backup (TC-CLI-N-02)."""
        with (
            patch("sitemirror.main.run_backup", new_callable=AsyncMock, return_value=0) as run,
            patch("sitemirror.main.configure_logging"),
        ):
            code = main(["https://example.com"])

        assert code == 0
        assert "Backing up https://example.com" in capsys.readouterr().out
        run.assert_awaited_once_with("https://example.com", None, False)

    def test_options_forwarded(self) -> None:
        """Test output, headful and logging options are applied (TC-CLI-N-03)."""
        with (
            patch("sitemirror.main.run_backup", new_callable=AsyncMock, return_value=0) as run,
            patch("sitemirror.main.configure_logging") as configure,
        ):
            main(["http://example.com", "-o", "backup", "--headful", "--log-level", "DEBUG"])

        run.assert_awaited_once_with("http://example.com", "backup", True)
        configure.assert_called_once_with(log_level="DEBUG", json_format=False)

    def test_default_site_used(self) -> None:
        with (
            patch("sitemirror.main.run_backup", new_callable=AsyncMock, return_value=0) as run,
            patch("sitemirror.main.configure_logging"),
        ):
            main([])

        run.assert_awaited_once_with("https://qanon.pub", None, False)


class TestRunBackup:
    """Tests for run_backup() exit codes."""

    @staticmethod
    def _result(failures: int) -> BackupResult:
        return BackupResult(
            site_url="https://example.com",
            mirror_root=Path("www"),
            pages=[
                PageResult(
                    url="https://example.com", link_kind=LinkKind.DOWNLOADS, failures=failures
                )
            ],
        )

    @pytest.mark.asyncio
    async def test_success(self, capsys) -> None:
        orchestrator = MagicMock()
        orchestrator.run = AsyncMock(return_value=self._result(0))

        with patch(
            "sitemirror.crawler.orchestrator.BackupOrchestrator", return_value=orchestrator
        ):
            code = await run_backup("https://example.com", None, False)

        assert code == 0
        assert "BACKUP COMPLETE!" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_failures_exit_1(self, capsys) -> None:
        """Test a partial mirror exits 1 (TC-CLI-A-02)."""
        orchestrator = MagicMock()
        orchestrator.run = AsyncMock(return_value=self._result(2))

        with patch(
            "sitemirror.crawler.orchestrator.BackupOrchestrator", return_value=orchestrator
        ):
            code = await run_backup("https://example.com", None, False)

        assert code == 1
        assert "2 file(s) failed to download" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_launch_failure_exit_1(self, capsys) -> None:
        """Test browser launch failure exits 1 with a message (TC-CLI-A-03)."""
        orchestrator = MagicMock()
        orchestrator.run = AsyncMock(
            side_effect=BrowserLaunchError("Browser launch failed: executable not found")
        )

        with patch(
            "sitemirror.crawler.orchestrator.BackupOrchestrator", return_value=orchestrator
        ):
            code = await run_backup("https://example.com", None, True)

        assert code == 1
        assert "Browser launch failed" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_headful_config(self) -> None:
        orchestrator = MagicMock()
        orchestrator.run = AsyncMock(return_value=self._result(0))

        with (
            patch(
                "sitemirror.crawler.orchestrator.BackupOrchestrator", return_value=orchestrator
            ),
            patch("sitemirror.crawler.playwright_provider.PlaywrightProvider") as provider_cls,
        ):
            await run_backup("https://example.com", None, True)

        browser_config = provider_cls.call_args.args[0]
        assert browser_config.headless is False
