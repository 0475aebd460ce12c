"""Tests for the datasheet command line."""

from __future__ import annotations

import logging

from datasheet.cli import build_parser, main
from datasheet.log import get_logger


class TestParser:
    """Tests for argument parsing."""

    def test_config_flags_are_exclusive(self):
        """Only one output mode can be chosen."""
        parser = build_parser()
        args = parser.parse_args(["config", "--toml"])
        assert args.toml and not args.env

    def test_init_defaults(self):
        """init writes datasheet.toml unless told otherwise."""
        args = build_parser().parse_args(["init"])
        assert args.path == "datasheet.toml"
        assert not args.force


class TestConfigCommand:
    """Tests for ``datasheet config``."""

    def test_show_is_default(self, capsys):
        """Without a flag the table is printed."""
        assert main(["config"]) == 0
        assert capsys.readouterr().out.startswith("datasheet configuration")

    def test_toml(self, capsys):
        """--toml prints TOML sections."""
        assert main(["config", "--toml"]) == 0
        out = capsys.readouterr().out
        assert "[format]" in out
        assert "[log]" in out

    def test_env_reflects_environment(self, capsys, monkeypatch):
        """--env prints current values, including overrides."""
        monkeypatch.setenv("DATASHEET_GRID__MIN_COLUMN_WIDTH", "60")
        assert main(["config", "--env"]) == 0
        assert 'export DATASHEET_GRID__MIN_COLUMN_WIDTH="60"' in capsys.readouterr().out

    def test_output_file(self, tmp_path, capsys):
        """--output writes to a file."""
        target = tmp_path / "out.toml"
        assert main(["config", "--toml", "--output", str(target)]) == 0
        assert "[detection]" in target.read_text(encoding="utf-8")
        assert "Configuration written to" in capsys.readouterr().out

    def test_sources(self, tmp_path, capsys):
        """--sources lists each file and whether it exists."""
        (tmp_path / "datasheet.toml").write_text("", encoding="utf-8")
        assert main(["config", "--sources"]) == 0
        out = capsys.readouterr().out
        assert "Configuration Sources" in out
        assert "./datasheet.toml" in out
        assert "found" in out


class TestInitCommand:
    """Tests for ``datasheet init``."""

    def test_creates_file(self, tmp_path, capsys):
        """init writes a commented TOML file."""
        assert main(["init"]) == 0
        text = (tmp_path / "datasheet.toml").read_text(encoding="utf-8")
        assert text.startswith("# datasheet configuration file")
        assert "[format]" in text
        assert "Created datasheet.toml" in capsys.readouterr().out

    def test_refuses_to_overwrite(self, tmp_path, capsys):
        """An existing file needs --force."""
        (tmp_path / "datasheet.toml").write_text("keep = 1\n", encoding="utf-8")
        assert main(["init"]) == 1
        assert "already exists" in capsys.readouterr().err
        assert (tmp_path / "datasheet.toml").read_text(encoding="utf-8") == "keep = 1\n"

    def test_force(self, tmp_path):
        """--force replaces the file."""
        target = tmp_path / "custom.toml"
        target.write_text("old", encoding="utf-8")
        assert main(["init", "--force", "--path", str(target)]) == 0
        assert "[grid]" in target.read_text(encoding="utf-8")


class TestNoCommand:
    """Tests for running without a subcommand."""

    def test_prints_help(self, capsys):
        """Help is shown and the exit code is 0."""
        assert main([]) == 0
        assert "usage: datasheet" in capsys.readouterr().out


class TestLogSettings:
    """Tests for applying the ``log`` settings section."""

    def test_level_from_config_file(self, tmp_path, capsys):
        """The configured level is applied before a command runs."""
        (tmp_path / "datasheet.toml").write_text('[log]\nlevel = "debug"\n', encoding="utf-8")
        assert main(["config", "--env"]) == 0
        assert get_logger().level == logging.DEBUG
        assert 'DATASHEET_LOG__LEVEL="DEBUG"' in capsys.readouterr().out
