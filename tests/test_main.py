"""Unit tests for the main entry point.

Tests the main() function including:
- CLI argument parsing
- Log level priority (CLI > env > config)
- --once exit codes
- --query-recent output
- Startup failures (configuration, store)
- Notifier construction
"""

from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from jobfeed.config.environment import EnvironmentConfig
from jobfeed.config.exceptions import ConfigurationError
from jobfeed.config.models import AppConfig
from jobfeed.domain.models import NormalizedPosting
from jobfeed.main import (
    build_notification_service,
    build_parser,
    format_listing_lines,
    load_runtime_config,
    main,
)
from jobfeed.notifications.service import NotificationService
from jobfeed.persistence import IndexStore
from jobfeed.persistence.exceptions import StoreConnectionError
from jobfeed.query import ListingQueryService
from jobfeed.reconciliation import ReconciliationEngine

T0 = datetime(2025, 11, 1, 9, 0, tzinfo=timezone.utc)


def make_app_config(**overrides):
    fields = {
        "employers": [{"name": "Acme Capital", "type": "greenhouse", "identifier": "acme"}],
        "sync_interval": "30m",
    }
    fields.update(overrides)
    return AppConfig(**fields)


def make_env_config(**overrides):
    fields = {"store_url": "sqlite:///:memory:", "environment": "test"}
    fields.update(overrides)
    return EnvironmentConfig(**fields)


@pytest.fixture
def patched_main():
    """Patch every collaborator main() builds so nothing touches disk or network."""
    app_config = make_app_config()
    env_config = make_env_config(log_level="INFO")
    with patch("jobfeed.main.load_dotenv"), \
            patch("jobfeed.main.load_runtime_config", return_value=(app_config, env_config)) as load, \
            patch("jobfeed.main.configure_logging") as configure, \
            patch("jobfeed.main.IndexStore") as store_cls, \
            patch("jobfeed.main.SyncPipeline") as pipeline_cls, \
            patch("jobfeed.main.run_daemon", return_value=0) as run_daemon:
        store_cls.return_value.open.return_value = store_cls.return_value
        yield {
            "app_config": app_config,
            "env_config": env_config,
            "load": load,
            "configure": configure,
            "store": store_cls.return_value,
            "store_cls": store_cls,
            "pipeline": pipeline_cls.return_value,
            "pipeline_cls": pipeline_cls,
            "run_daemon": run_daemon,
        }


class TestParser:
    def test_defaults(self):
        args = build_parser().parse_args([])

        assert args.config is None
        assert args.once is False
        assert args.log_level is None
        assert args.query_recent is None

    def test_flags(self):
        args = build_parser().parse_args(
            ["--config", "custom.yaml", "--once", "--log-level", "DEBUG", "--query-recent", "5"]
        )

        assert args.config == Path("custom.yaml")
        assert args.once is True
        assert args.log_level == "DEBUG"
        assert args.query_recent == 5

    def test_invalid_log_level(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["--log-level", "LOUD"])


class TestLoadRuntimeConfig:
    """Log level priority: CLI flag, then LOG_LEVEL, then the config file."""

    def run(self, cli_level=None, env_level=None, file_level="WARNING"):
        app_config = make_app_config(logging={"level": file_level})
        env_config = make_env_config(log_level=env_level)
        with patch("jobfeed.main.load_config", return_value=(app_config, env_config)) as load:
            _, env = load_runtime_config(Path("config.yaml"), cli_level)
        load.assert_called_once_with(Path("config.yaml"))
        return env.log_level

    def test_cli_wins(self):
        assert self.run(cli_level="DEBUG", env_level="ERROR") == "DEBUG"

    def test_env_over_file(self):
        assert self.run(env_level="ERROR") == "ERROR"

    def test_file_fallback(self):
        assert self.run() == "WARNING"


class TestMain:
    def test_configuration_error_returns_1(self, capsys):
        with patch("jobfeed.main.load_dotenv"), patch(
            "jobfeed.main.load_runtime_config",
            side_effect=ConfigurationError("Configuration file not found"),
        ):
            assert main([]) == 1

        assert "Configuration Error: Configuration file not found" in capsys.readouterr().err

    def test_store_error_returns_1(self, patched_main, capsys):
        patched_main["store"].open.side_effect = StoreConnectionError("cannot open")

        assert main(["--once"]) == 1

        assert "Store Error" in capsys.readouterr().err
        patched_main["pipeline_cls"].assert_not_called()

    def test_logging_configured_from_config(self, patched_main):
        main(["--once"])

        patched_main["configure"].assert_called_once_with(
            level="INFO", format_type="key-value", environment="test"
        )
        patched_main["store_cls"].assert_called_once_with("sqlite:///:memory:")

    def test_once_success(self, patched_main):
        patched_main["pipeline"].run_once.return_value = MagicMock(had_errors=False)

        assert main(["--once"]) == 0

        patched_main["pipeline"].run_once.assert_called_once_with()
        patched_main["run_daemon"].assert_not_called()
        patched_main["store"].close.assert_called_once()

    def test_once_with_errors(self, patched_main):
        patched_main["pipeline"].run_once.return_value = MagicMock(had_errors=True)

        assert main(["--once"]) == 1

    def test_pipeline_without_notifier(self, patched_main):
        patched_main["pipeline"].run_once.return_value = MagicMock(had_errors=False)

        main(["--once"])

        kwargs = patched_main["pipeline_cls"].call_args.kwargs
        assert kwargs["app_config"] is patched_main["app_config"]
        assert kwargs["store"] is patched_main["store"]
        assert kwargs["notification_service"] is None

    def test_daemon_mode(self, patched_main):
        assert main([]) == 0

        patched_main["run_daemon"].assert_called_once_with(
            patched_main["pipeline"], patched_main["app_config"], patched_main["store"]
        )
        patched_main["store"].close.assert_called_once()

    def test_query_recent_prints_and_exits(self, patched_main, capsys):
        with patch("jobfeed.main.format_listing_lines", return_value=["line one", "line two"]) as fmt:
            assert main(["--query-recent", "2"]) == 0

        assert capsys.readouterr().out.splitlines() == ["line one", "line two"]
        assert fmt.call_args.args[1] == 2
        patched_main["pipeline_cls"].assert_not_called()

    def test_keyboard_interrupt(self, patched_main, capsys):
        patched_main["run_daemon"].side_effect = KeyboardInterrupt

        assert main([]) == 0

        assert "Shutdown requested" in capsys.readouterr().err
        patched_main["store"].close.assert_called_once()


class TestBuildNotificationService:
    def test_none_when_no_channels(self):
        assert build_notification_service(make_app_config(), make_env_config()) is None

    def test_service_with_channels(self):
        app_config = make_app_config(
            notifications={"webhook_enabled": True}, advanced={"http_request_timeout": 12}
        )
        env_config = make_env_config(webhook_url="https://hooks.example.com/T000/B000")

        service = build_notification_service(app_config, env_config)

        assert isinstance(service, NotificationService)
        assert service.enabled_channels == ["webhook"]


class TestFormatListingLines:
    @pytest.fixture
    def query_service(self):
        store = IndexStore("sqlite:///:memory:").open()
        engine = ReconciliationEngine(store)
        engine.reconcile(
            "acme",
            [
                NormalizedPosting(
                    source_id="1",
                    title="Senior Quant Researcher",
                    url="https://example.com/jobs/1",
                    location_raw="New York, NY",
                    department_raw="Research",
                ),
                NormalizedPosting(source_id="2", title="Data Engineer", url="https://example.com/jobs/2"),
            ],
            employer_name="Acme Capital",
            now=T0,
        )
        engine.reconcile(
            "globex",
            [NormalizedPosting(source_id="9", title="Platform Engineer", url="https://example.com/jobs/9")],
            now=T0 + timedelta(hours=1),
        )
        yield ListingQueryService(store)
        store.close()

    @pytest.mark.parametrize("limit", [0, -3])
    def test_non_positive_limit(self, query_service, limit):
        assert format_listing_lines(query_service, limit) == []

    def test_newest_first(self, query_service):
        lines = format_listing_lines(query_service, 10)

        assert len(lines) == 3
        first = lines[0].split("\t")
        assert first[0] == "2025-11-01T10:00:00.000000Z"
        # no employer name recorded, so the id is shown
        assert first[1] == "globex"
        assert first[2] == "Platform Engineer"
        assert first[5] == "https://example.com/jobs/9"
        assert all(len(line.split("\t")) == 6 for line in lines)

    def test_limit_applied(self, query_service):
        lines = format_listing_lines(query_service, 1)

        assert len(lines) == 1
        assert "Platform Engineer" in lines[0]

    def test_tags_joined(self, query_service):
        researcher = next(line for line in format_listing_lines(query_service, 10) if "Researcher" in line)

        assert "quant" in researcher.split("\t")[4].split(",")
        assert researcher.split("\t")[1] == "Acme Capital"
