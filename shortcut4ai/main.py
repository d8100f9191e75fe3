"""
Main application entry point for Shortcut4AI.

This module provides the command-line interface and wires the recorder,
transcriber, text processor, clipboard and hotkeys into the running
hotkey daemon.
"""

import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import Dict, Optional

import click
import pyperclip
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from . import __version__
from .audio.recorder import Recorder, list_input_devices
from .audio.transcriber import GroqTranscriber
from .commands import DEFAULT_COMMANDS, build_hotkey_map, find_command, resolve_bindings
from .config import AUTO_GRAMMAR_KEY, CONDENSED_MODE_KEY, AppConfig, Settings, load_config, save_config
from .controller import InteractionController
from .desktop.clipboard import Clipboard
from .desktop.hotkeys import Action, EscapeTrigger, HotkeyManager, Shortcut
from .errors import Shortcut4AIError
from .text.history import ConversationHistory
from .text.processor import TextProcessor, ensure_prompt_files
from .text.providers import create_provider
from .ui.status import ConsoleStatusSink

logger = logging.getLogger(__name__)

SETTINGS_POLL_INTERVAL = 2.0


def setup_logging(config: AppConfig, console: Optional[Console] = None) -> None:
    """Log everything to the data directory and the configured level to the console."""
    log_path = config.log_path
    log_path.parent.mkdir(parents=True, exist_ok=True)

    file_handler = logging.FileHandler(log_path, encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s'
    ))

    console_handler = RichHandler(console=console, show_path=False, markup=False)
    console_handler.setLevel(getattr(logging, config.log_level.upper(), logging.INFO))

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(logging.DEBUG)
    root_logger.addHandler(file_handler)
    root_logger.addHandler(console_handler)

    # SDK transports are chatty at DEBUG
    for name in ("httpx", "httpcore", "openai", "anthropic"):
        logging.getLogger(name).setLevel(logging.WARNING)


class ShortcutApp:
    """
    Main application class that coordinates all components.

    Builds the long-lived services from the configuration; ``run`` adds the
    loop-bound pieces (hotkeys, Escape trigger, recorder, controller) and
    waits until interrupted.
    """

    def __init__(self, config: AppConfig, console: Optional[Console] = None):
        self.config = config
        self.console = console or Console()
        self.settings = Settings(config.settings_path)

        ensure_prompt_files(config.grammar_prompt_path, config.assistant_prompt_path)
        self.history = ConversationHistory(config.history_path, capacity=config.history_capacity)
        self.history.load()

        provider = create_provider(
            config.chat_provider,
            model=config.chat_model or None,
            timeout=config.request_timeout,
        )
        self.processor = TextProcessor(
            provider,
            grammar_prompt_path=config.grammar_prompt_path,
            assistant_prompt_path=config.assistant_prompt_path,
            grammar_temperature=config.grammar_temperature,
            assistant_temperature=config.assistant_temperature,
        )
        self.transcriber = GroqTranscriber(
            model=config.transcription_model,
            base_url=config.transcription_base_url,
            language=config.transcription_language,
            timeout=config.request_timeout,
        )
        self.clipboard = Clipboard(copy_delay=config.copy_delay, paste_delay=config.paste_delay)
        self.status = ConsoleStatusSink(self.console)

        self.controller: Optional[InteractionController] = None
        self.hotkeys: Optional[HotkeyManager] = None
        self._bound: Dict[str, Shortcut] = {}

    def build_controller(self, recorder: Recorder) -> InteractionController:
        self.controller = InteractionController(
            recorder=recorder,
            transcriber=self.transcriber,
            processor=self.processor,
            history=self.history,
            clipboard=self.clipboard,
            status=self.status,
            settings=self.settings,
            revert_delay=self.config.revert_delay,
        )
        return self.controller

    def handlers(self) -> Dict[str, Action]:
        """Setting key -> async action for every command."""
        controller = self.controller
        return {
            "grammarShortcut": controller.grammar_fix,
            "transcriptionShortcut": controller.toggle_transcription,
            "assistantShortcut": controller.assistant,
            "assistantClipboardShortcut": controller.assistant_from_clipboard,
            "editPromptShortcut": lambda: self.edit_prompt(self.config.grammar_prompt_path),
            "editAssistantPromptShortcut": lambda: self.edit_prompt(self.config.assistant_prompt_path),
            "autoGrammarToggle": controller.toggle_auto_correct,
            "condensedModeToggle": controller.toggle_condensed,
            "viewHistoryShortcut": self.view_history,
        }

    async def edit_prompt(self, path: Path) -> None:
        """Open a prompt file in the default editor and reload prompts afterwards."""
        self.status.flash(f"Opening {path.name}")
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, lambda: click.launch(str(path), wait=True))
        self.processor.reload_prompts()
        logger.info(f"Prompts reloaded after editing {path.name}")

    async def view_history(self) -> None:
        path = self.config.history_path
        if not path.exists():
            self.status.flash("No conversation history yet")
            return
        click.launch(str(path))

    def rebind_hotkeys(self) -> None:
        hotkeys = build_hotkey_map(self.settings, self.handlers())
        self.hotkeys.rebind(hotkeys)
        self._bound = resolve_bindings(self.settings)

    def reload_settings(self) -> bool:
        """
        Pick up settings changed on disk and rebuild the hotkeys if bindings moved.

        Flags are re-read by ``Settings`` on every access; only shortcut
        changes need the listener rebuilt.

        Returns:
            True if the hotkeys were rebound.
        """
        self.settings.refresh()
        bindings = resolve_bindings(self.settings)
        if self.hotkeys is None or bindings == self._bound:
            return False
        try:
            self.rebind_hotkeys()
        except ValueError as e:
            # Remember the rejected bindings so the poll doesn't report them again
            self._bound = bindings
            logger.error(f"Keeping previous shortcuts: {e}")
            self.status.flash(f"Shortcuts not updated: {e}", error=True)
            return False
        self.status.flash("Shortcuts updated")
        return True

    async def watch_settings(self, interval: float = SETTINGS_POLL_INTERVAL) -> None:
        """Poll the settings file so CLI changes reach the running daemon."""
        while True:
            await asyncio.sleep(interval)
            self.reload_settings()

    async def run(self) -> None:
        """Run the hotkey daemon until SIGINT/SIGTERM."""
        loop = asyncio.get_running_loop()
        escape = EscapeTrigger(loop)
        recorder = Recorder(
            self.config.audio_path,
            device=self.config.audio_device,
            ffmpeg_path=self.config.ffmpeg_path,
            input_format=self.config.audio_input_format,
            confirm_delay=self.config.confirm_delay,
            cancel_trigger=escape,
        )
        self.build_controller(recorder)
        self.hotkeys = HotkeyManager(loop)
        self.rebind_hotkeys()

        if not self.transcriber.is_available():
            logger.warning("GROQ_API_KEY is not set; transcription will fail")
        if not self.processor.provider.is_available():
            logger.warning(f"No API key for {self.processor.provider.name}; grammar and assistant will fail")

        self.show_banner()

        stop = asyncio.Event()
        handlers = [(signal.SIGINT, stop.set), (signal.SIGTERM, stop.set)]
        if hasattr(signal, "SIGHUP"):
            handlers.append((signal.SIGHUP, self.reload_settings))
        for sig, handler in handlers:
            try:
                loop.add_signal_handler(sig, handler)
            except (NotImplementedError, RuntimeError):
                pass

        watcher = loop.create_task(self.watch_settings())
        try:
            await stop.wait()
        finally:
            watcher.cancel()
            self.hotkeys.stop()
            escape.unbind()
            await self.controller.shutdown()
            self.console.print("\n[yellow]Shortcut4AI stopped.[/yellow]")

    def show_banner(self) -> None:
        welcome = Text()
        welcome.append("⌨️  Shortcut4AI", style="bold magenta")
        welcome.append(f" v{__version__}\n\n")
        for setting_key, shortcut in resolve_bindings(self.settings).items():
            welcome.append(f"{shortcut}", style="bold cyan")
            welcome.append(f"  {find_command(setting_key).label}\n")
        welcome.append("\nAuto-Grammar: ", style="dim")
        welcome.append("ON" if self.controller.auto_correct else "OFF")
        welcome.append("   Condensed Mode: ", style="dim")
        welcome.append("ON" if self.controller.condensed else "OFF")

        self.console.print(Panel(
            welcome,
            title="Ready",
            title_align="center",
            border_style="magenta",
            padding=(1, 2)
        ))


def _load(ctx: click.Context) -> AppConfig:
    try:
        config = load_config()
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        ctx.exit(1)
    setup_logging(config)
    return config


@click.group(invoke_without_command=True)
@click.version_option(version=__version__)
@click.pass_context
def cli(ctx: click.Context) -> None:
    """
    Shortcut4AI - global shortcuts for transcription, grammar fixes and an AI assistant.

    Run without a command to start the hotkey daemon.
    """
    ctx.obj = _load(ctx)
    if ctx.invoked_subcommand is None:
        ctx.invoke(run)


@cli.command()
@click.pass_obj
def run(config: AppConfig) -> None:
    """Start the hotkey daemon."""
    try:
        app = ShortcutApp(config)
        asyncio.run(app.run())
    except KeyboardInterrupt:
        click.echo("\nApplication interrupted by user.")
    except (ValueError, Shortcut4AIError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@cli.command()
@click.option('--clear', is_flag=True, help='Delete the stored conversation')
@click.option('--limit', default=10, show_default=True, help='Number of recent turns to show')
@click.pass_obj
def history(config: AppConfig, clear: bool, limit: int) -> None:
    """Show or clear the assistant conversation history."""
    store = ConversationHistory(config.history_path, capacity=config.history_capacity)
    store.load()
    console = Console()

    if clear:
        store.clear()
        console.print("[green]✅ Conversation history cleared.[/green]")
        return

    turns = store.turns()[-limit:] if limit > 0 else store.turns()
    if not turns:
        console.print("[dim]No conversation history.[/dim]")
        return
    for turn in turns:
        style = "cyan" if turn.role.value == "user" else "green"
        console.print(Panel(turn.content, title=turn.role.value, title_align="left", border_style=style))


@cli.command()
@click.pass_obj
def shortcuts(config: AppConfig) -> None:
    """List commands and their current shortcuts."""
    settings = Settings(config.settings_path)
    bindings = resolve_bindings(settings)

    table = Table(title="Shortcuts")
    table.add_column("Setting key", style="dim")
    table.add_column("Command")
    table.add_column("Shortcut", style="bold cyan")
    table.add_column("Default", style="dim")
    for command in DEFAULT_COMMANDS:
        table.add_row(command.setting_key, command.label,
                      str(bindings[command.setting_key]), str(command.default))
    Console().print(table)


@cli.command("set-shortcut")
@click.argument('setting_key')
@click.argument('combo')
@click.pass_obj
def set_shortcut(config: AppConfig, setting_key: str, combo: str) -> None:
    """Bind SETTING_KEY to COMBO, e.g. ``alt+cmd+g``."""
    if find_command(setting_key) is None:
        raise click.BadParameter(f"Unknown command: {setting_key}", param_hint="SETTING_KEY")
    try:
        shortcut = Shortcut.parse(combo)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="COMBO")

    settings = Settings(config.settings_path)
    bindings = resolve_bindings(settings)
    for other_key, other in bindings.items():
        if other_key != setting_key and other == shortcut:
            raise click.UsageError(f"{shortcut} is already bound to {other_key}")

    settings.set_shortcut(setting_key, shortcut.sorted_modifiers(), shortcut.key)
    click.echo(f"{setting_key} -> {shortcut}")


@cli.command("reset-shortcut")
@click.argument('setting_key')
@click.pass_obj
def reset_shortcut(config: AppConfig, setting_key: str) -> None:
    """Restore the default shortcut for SETTING_KEY."""
    command = find_command(setting_key)
    if command is None:
        raise click.BadParameter(f"Unknown command: {setting_key}", param_hint="SETTING_KEY")
    Settings(config.settings_path).clear_shortcut(setting_key)
    click.echo(f"{setting_key} -> {command.default}")


@cli.command()
@click.argument('flag', type=click.Choice(['auto-grammar', 'condensed']))
@click.pass_obj
def toggle(config: AppConfig, flag: str) -> None:
    """Flip the auto-grammar or condensed-mode flag."""
    key = AUTO_GRAMMAR_KEY if flag == 'auto-grammar' else CONDENSED_MODE_KEY
    value = Settings(config.settings_path).toggle(key)
    click.echo(f"{flag}: {'ON' if value else 'OFF'}")


@cli.command("settings")
@click.pass_obj
def show_settings(config: AppConfig) -> None:
    """Show the current flags and main configuration."""
    settings = Settings(config.settings_path)

    table = Table(title="Settings", show_header=False)
    table.add_column("Setting", style="dim")
    table.add_column("Value", style="bold")
    table.add_row("Auto-Grammar", "ON" if settings.get_bool(AUTO_GRAMMAR_KEY) else "OFF")
    table.add_row("Condensed Mode", "ON" if settings.get_bool(CONDENSED_MODE_KEY) else "OFF")
    table.add_row("Chat provider", config.chat_provider)
    table.add_row("Chat model", config.chat_model or "(provider default)")
    table.add_row("Transcription model", config.transcription_model)
    table.add_row("Audio device", f"{config.audio_input_format} {config.audio_device}")
    table.add_row("History capacity", str(config.history_capacity))
    table.add_row("Data directory", str(config.home))
    Console().print(table)


@cli.command()
@click.pass_obj
def devices(config: AppConfig) -> None:
    """List audio capture devices."""
    try:
        found = asyncio.run(list_input_devices(config.ffmpeg_path))
    except Shortcut4AIError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    if not found:
        click.echo("No audio devices found.")
        return
    for index, name in found:
        marker = "*" if str(index) == config.audio_device.lstrip(":") else " "
        click.echo(f"{marker} [{index}] {name}")


@cli.command("use-device")
@click.argument('index', type=int)
@click.pass_obj
def use_device(config: AppConfig, index: int) -> None:
    """Record from the device with INDEX (see ``devices``)."""
    config.audio_device = str(index)
    save_config(config)
    click.echo(f"Audio device set to {index}")


@cli.command()
@click.argument('file', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option('--correct', is_flag=True, help='Run the grammar fix on the transcript')
@click.pass_obj
def transcribe(config: AppConfig, file: Path, correct: bool) -> None:
    """Transcribe an audio FILE and copy the text to the clipboard."""
    transcriber = GroqTranscriber(
        model=config.transcription_model,
        base_url=config.transcription_base_url,
        language=config.transcription_language,
        timeout=config.request_timeout,
    )
    then = None
    if correct:
        settings = Settings(config.settings_path)
        processor = TextProcessor(
            create_provider(config.chat_provider, model=config.chat_model or None,
                            timeout=config.request_timeout),
            grammar_prompt_path=config.grammar_prompt_path,
            grammar_temperature=config.grammar_temperature,
        )
        profile = processor.grammar_profile(condensed=settings.get_bool(CONDENSED_MODE_KEY))
        then = lambda text: processor.correct(text, profile)

    console = Console()
    try:
        with console.status("[cyan]Transcribing...[/cyan]"):
            text = asyncio.run(transcriber.transcribe(file, then=then))
    except Shortcut4AIError as e:
        console.print(f"[red]❌ {e}[/red]")
        sys.exit(1)

    console.print(Panel(text, title="Transcription", border_style="green"))
    try:
        pyperclip.copy(text)
    except pyperclip.PyperclipException as e:
        console.print(f"[yellow]⚠️  Could not copy to clipboard: {e}[/yellow]")


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
