"""
Tests for the plugin command line.
"""

import logging
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from nativeplug.config import CONFIG_FILENAME
from nativeplug.plugin.classifier import PluginRecord, PluginMetadata
from nativeplug.plugin.native_cache import PrepareOutcome
from nativeplug.plugin.service import (
    AddResult,
    InvalidPluginError,
    PlatformOutcome,
    PlatformResult,
    PrepareResult,
    RemoveResult,
)
from nativeplug.project import Platform
from pm.cli import create_parser, main, option_overrides


@pytest.fixture(autouse=True)
def reset_logging():
    """Drop the handler installed by the CLI after each test."""
    yield
    logger = logging.getLogger("nativeplug")
    logger.handlers.clear()
    logger.setLevel(logging.NOTSET)


def fake_service(**methods):
    service = MagicMock()
    for name, value in methods.items():
        setattr(service, name, value)
    return service


class TestParser:
    """Test argument parsing."""

    def test_add(self):
        """Should parse add with options."""
        args = create_parser().parse_args(["--ignore-scripts", "add", "nativescript-camera"])

        assert args.command == "add"
        assert args.specifier == "nativescript-camera"
        assert args.ignore_scripts is True
        assert args.force is None

    def test_flags_after_subcommand(self):
        """Package manager flags should be accepted after the subcommand."""
        args = create_parser().parse_args(
            ["add", "nativescript-camera", "--ignore-scripts", "--framework-path", "fw.tgz"]
        )

        assert args.ignore_scripts is True
        assert args.framework_path == "fw.tgz"
        assert args.disable_npm_install is None

    def test_flags_before_subcommand_kept(self):
        """Flags given before the subcommand should survive subcommand parsing."""
        args = create_parser().parse_args(["--force", "remove", "cam", "--path", "app"])

        assert args.force is True
        assert args.path == "app"
        assert option_overrides(args)["ignore_scripts"] is None

    def test_prepare_platforms(self):
        """Should collect platforms for prepare."""
        args = create_parser().parse_args(["prepare", "ios", "android"])

        assert args.platforms == ["ios", "android"]


class TestCommands:
    """Test command execution."""

    def test_no_command_shows_help(self, capsys):
        """Should print help without a command."""
        assert main([]) == 0
        assert "usage: plugin" in capsys.readouterr().out

    def test_add_success(self, project_dir, capsys):
        """Should report the installed plugin and per-platform status."""
        record = PluginRecord("cam", "1.0.0", project_dir, PluginMetadata())
        service = fake_service(
            add=AsyncMock(return_value=AddResult(record, {Platform.IOS: False}))
        )

        with patch("pm.commands.add.build_service", return_value=service):
            code = main(["--project", str(project_dir), "add", "cam"])

        out = capsys.readouterr().out
        assert code == 0
        assert "Successfully installed plugin cam." in out
        assert "ios: not compatible" in out

    def test_add_invalid_plugin(self, project_dir, capsys):
        """An invalid plugin should exit non-zero with the error."""
        service = fake_service(
            add=AsyncMock(side_effect=InvalidPluginError("left-pad is not a valid NativeScript plugin."))
        )

        with patch("pm.commands.add.build_service", return_value=service):
            code = main(["--project", str(project_dir), "add", "left-pad"])

        assert code == 1
        assert "Error: left-pad is not a valid" in capsys.readouterr().err

    def test_add_without_specifier(self, capsys):
        """Should fail when no plugin is given."""
        assert main(["add"]) == 1
        assert "No plugin specified" in capsys.readouterr().err

    def test_remove_reports_platforms(self, project_dir, capsys):
        """Should report each platform outcome."""
        result = RemoveResult(
            "cam",
            [
                PlatformResult(Platform.IOS, PlatformOutcome.FAILED, "boom"),
                PlatformResult(Platform.ANDROID, PlatformOutcome.REMOVED),
            ],
            uninstalled=True,
        )
        service = fake_service(remove=AsyncMock(return_value=result))

        with patch("pm.commands.remove.build_service", return_value=service):
            code = main(["--project", str(project_dir), "remove", "cam"])

        captured = capsys.readouterr()
        assert code == 0
        assert "Successfully removed plugin cam for android." in captured.out
        assert "Failed to remove plugin cam for ios: boom" in captured.err

    def test_prepare(self, project_dir, capsys):
        """Should print one line per prepared plugin."""
        results = [
            PrepareResult("cam", Platform.ANDROID, PrepareOutcome.INTEGRATED),
            PrepareResult("cam", Platform.IOS, PrepareOutcome.NO_NATIVE_CODE),
        ]
        service = fake_service(prepare_all=AsyncMock(return_value=results))

        with patch("pm.commands.prepare.build_service", return_value=service):
            code = main(["--project", str(project_dir), "prepare"])

        out = capsys.readouterr().out
        assert code == 0
        assert "cam [android]: integrated" in out
        assert "[ios]" not in out

    def test_init_config(self, project_dir):
        """Should write the options file."""
        assert main(["--project", str(project_dir), "init-config"]) == 0
        assert (project_dir / CONFIG_FILENAME).exists()

        assert main(["--project", str(project_dir), "init-config"]) == 1
