"""
Tests for the command-line interface and the console status sink.

Commands run through click's CliRunner against a throwaway data directory.
"""

import io
import json
from unittest.mock import Mock

import pytest
from click.testing import CliRunner
from rich.console import Console

from shortcut4ai.config import AUTO_GRAMMAR_KEY, SETTINGS_FILE, AppConfig, Settings
from shortcut4ai.desktop.hotkeys import Shortcut
from shortcut4ai.main import ShortcutApp, cli
from shortcut4ai.text.history import ConversationHistory, Role
from shortcut4ai.ui.status import ConsoleStatusSink, InteractionState


@pytest.fixture
def home(tmp_path, monkeypatch):
    monkeypatch.setenv("SHORTCUT4AI_HOME", str(tmp_path))
    monkeypatch.setenv("COLUMNS", "200")
    monkeypatch.delenv("AUDIO_DEVICE", raising=False)
    monkeypatch.delenv("FFMPEG_PATH", raising=False)
    return tmp_path


@pytest.fixture
def runner():
    return CliRunner()


def read_settings(home):
    return json.loads((home / SETTINGS_FILE).read_text())


class TestShortcutCommands:

    def test_lists_defaults(self, runner, home):
        result = runner.invoke(cli, ["shortcuts"])

        assert result.exit_code == 0
        assert "grammarShortcut" in result.output
        assert "alt+cmd+g" in result.output

    def test_set_and_reset(self, runner, home):
        result = runner.invoke(cli, ["set-shortcut", "grammarShortcut", "ctrl+shift+g"])

        assert result.exit_code == 0
        assert "grammarShortcut -> ctrl+shift+g" in result.output
        assert read_settings(home)["shortcuts"]["grammarShortcut"] == [["ctrl", "shift"], "g"]

        result = runner.invoke(cli, ["reset-shortcut", "grammarShortcut"])
        assert result.exit_code == 0
        assert "grammarShortcut" not in read_settings(home)["shortcuts"]

    def test_conflict_is_refused(self, runner, home):
        result = runner.invoke(cli, ["set-shortcut", "assistantShortcut", "alt+cmd+g"])

        assert result.exit_code != 0
        assert "already bound to grammarShortcut" in result.output

    def test_unknown_command_is_refused(self, runner, home):
        result = runner.invoke(cli, ["set-shortcut", "nopeShortcut", "alt+cmd+g"])
        assert result.exit_code != 0


class TestFlagAndHistoryCommands:

    def test_toggle_auto_grammar(self, runner, home):
        result = runner.invoke(cli, ["toggle", "auto-grammar"])

        assert result.exit_code == 0
        assert "auto-grammar: ON" in result.output
        assert read_settings(home)["auto_grammar_after_transcribe"] is True

    def test_history_show_and_clear(self, runner, home):
        history = ConversationHistory(home / "conversation_history.json")
        history.append(Role.USER, "What is a monad?")
        history.append(Role.ASSISTANT, "A burrito.")

        result = runner.invoke(cli, ["history"])
        assert result.exit_code == 0
        assert "A burrito." in result.output

        result = runner.invoke(cli, ["history", "--clear"])
        assert result.exit_code == 0
        history.load()
        assert len(history) == 0

    def test_use_device_persists(self, runner, home):
        result = runner.invoke(cli, ["use-device", "3"])

        assert result.exit_code == 0
        assert json.loads((home / "config.json").read_text())["audio_device"] == "3"

    def test_invalid_config_exits(self, runner, home):
        (home / "config.json").write_text("{broken")

        result = runner.invoke(cli, ["shortcuts"])

        assert result.exit_code == 1


class TestConsoleStatusSink:

    def make_sink(self):
        output = io.StringIO()
        console = Console(file=output, force_terminal=False, width=80)
        return ConsoleStatusSink(console, sounds=False), output

    def test_show_tracks_state(self):
        sink, output = self.make_sink()

        sink.show(InteractionState.RECORDING)

        assert sink.state == InteractionState.RECORDING
        assert "Recording" in output.getvalue()

    def test_error_flash_renders_panel(self):
        sink, output = self.make_sink()

        sink.flash("No text selected", error=True)

        assert "Error" in output.getvalue()
        assert "No text selected" in output.getvalue()


class TestSettingsCommand:

    def test_shows_flags(self, runner, home):
        runner.invoke(cli, ["toggle", "condensed"])

        result = runner.invoke(cli, ["settings"])

        assert result.exit_code == 0
        assert "Auto-Grammar" in result.output
        assert "Condensed Mode" in result.output
        assert "ON" in result.output
        assert "whisper-large-v3-turbo" in result.output


class TestDaemonSettingsReload:
    """Shortcut changes made by another process reach the running daemon."""

    @pytest.fixture
    def app(self, home):
        config = AppConfig(data_dir=str(home))
        app = ShortcutApp(config, console=Console(file=io.StringIO()))
        app.build_controller(Mock())
        app.hotkeys = Mock()
        app.rebind_hotkeys()
        return app

    def bound_shortcuts(self, app):
        return set(app.hotkeys.rebind.call_args.args[0])

    @pytest.mark.asyncio
    async def test_external_shortcut_change_rebinds(self, app, home):
        Settings(home / SETTINGS_FILE).set_shortcut("grammarShortcut", ["ctrl", "shift"], "g")

        assert app.reload_settings() is True

        assert app.hotkeys.rebind.call_count == 2
        assert Shortcut.parse("ctrl+shift+g") in self.bound_shortcuts(app)
        assert Shortcut.parse("alt+cmd+g") not in self.bound_shortcuts(app)

    @pytest.mark.asyncio
    async def test_unchanged_settings_do_not_rebind(self, app, home):
        Settings(home / SETTINGS_FILE).toggle(AUTO_GRAMMAR_KEY)

        assert app.reload_settings() is False
        assert app.hotkeys.rebind.call_count == 1
        assert app.controller.auto_correct is True

    @pytest.mark.asyncio
    async def test_conflicting_change_keeps_previous_bindings(self, app, home):
        Settings(home / SETTINGS_FILE).set_shortcut("assistantShortcut", ["alt", "cmd"], "g")

        assert app.reload_settings() is False
        assert app.reload_settings() is False
        assert app.hotkeys.rebind.call_count == 1
