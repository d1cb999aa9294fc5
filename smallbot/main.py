"""
smallbot: a personal AI assistant that lives in your chat app.

Commands: smallbot run | smallbot chat | smallbot ask PROMPT
"""

import sys
from typing import Optional

import click
from rich.console import Console

from . import __version__
from .agent import TurnLoop
from .bot import ChatBot
from .config import CONFIG_DIR, Config
from .llm import LLMAdapter
from .logger import setup_logger
from .plugins import load_plugins
from .sessions import SessionStore
from .tools import MemoryStore, ToolRegistry, Workspace, create_coding_tools
from .transport import ConsoleTransport, TelegramClient

console = Console()
BANNER = (
    f"[bold #7FA6D9]smallbot[/bold #7FA6D9] "
    f"[dim]v{__version__} · personal assistant[/dim]"
)
CONSOLE_USER_ID = 0


def build_bot(config: Config) -> ChatBot:
    """Wire the model, tools, sessions and memory for one process."""
    llm = LLMAdapter(**config.get_llm_kwargs())
    workspace = Workspace(config.resolve_path(config.work_dir), config.command_timeout)
    plugin_tools = load_plugins(config.resolve_path(config.plugins_dir))
    tools = ToolRegistry(create_coding_tools(workspace) + plugin_tools)
    loop = TurnLoop(llm, tools, max_turns=config.max_turns)

    prompts_path = config.resolve_path("prompts.yaml")
    return ChatBot(
        config=config,
        loop=loop,
        sessions=SessionStore(),
        memory=MemoryStore(config.resolve_path(config.data_dir)),
        prompts_path=prompts_path if prompts_path.exists() else None,
    )


def _load(project_dir: str, verbose: bool, log_level: Optional[str] = None) -> Config:
    config = Config.load(project_dir)
    if verbose:
        config.verbose = True
    setup_logger(verbose=config.verbose, level=log_level)
    return config


@click.group(invoke_without_command=True)
@click.version_option(__version__, prog_name="smallbot")
@click.pass_context
def cli(ctx):
    """smallbot: a personal AI assistant that lives in your chat app."""
    if ctx.invoked_subcommand is None:
        ctx.invoke(run)


@cli.command()
@click.option("--project-dir", "-d", default=".", help="Project directory")
@click.option("--workers", "-w", default=8, show_default=True, help="Concurrent chat handlers")
@click.option("--log-level", default=None, help="Log level (overrides LOG_LEVEL)")
@click.option("--verbose", "-v", is_flag=True, help="Verbose output")
def run(project_dir, workers, verbose, log_level):
    """Serve the Telegram bot."""
    console.print(BANNER)
    config = _load(project_dir, verbose, log_level)
    if not config.bot_token:
        console.print("[red]Error: BOT_TOKEN is not set.[/red]")
        sys.exit(1)
    if not config.allowed_user_ids:
        console.print("[yellow]⚠ ALLOWED_USER_IDS is empty; every message will be rejected.[/yellow]")

    for key, value in config.summary().items():
        console.print(f"  [dim]{key}:[/dim] {value}")

    bot = build_bot(config)
    bot.start_idle_sweeper()
    try:
        bot.poll_forever(TelegramClient(config.bot_token), max_workers=workers)
    except KeyboardInterrupt:
        console.print("\n[dim]Shutting down.[/dim]")
    finally:
        bot.stop()


@cli.command()
@click.option("--project-dir", "-d", default=".", help="Project directory")
@click.option("--verbose", "-v", is_flag=True, help="Verbose output")
def chat(project_dir, verbose):
    """Chat in the terminal, rendered the same way as the bot."""
    from prompt_toolkit import PromptSession
    from prompt_toolkit.history import FileHistory

    console.print(BANNER)
    config = _load(project_dir, verbose)
    config.allowed_user_ids.add(CONSOLE_USER_ID)
    bot = build_bot(config)

    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    session = PromptSession(history=FileHistory(str(CONFIG_DIR / "history.txt")))
    console.print("[dim]/clear resets the conversation, /quit exits.[/dim]")

    while True:
        try:
            user_input = session.prompt("> ").strip()
        except (EOFError, KeyboardInterrupt):
            console.print("\n[dim]Goodbye![/dim]")
            break
        if not user_input:
            continue
        if user_input in ("/quit", "/exit"):
            break

        transport = ConsoleTransport(console)
        try:
            bot.handle_text(CONSOLE_USER_ID, user_input, transport)
        except KeyboardInterrupt:
            console.print("\n[yellow]  Interrupted.[/yellow]")
        finally:
            transport.close()


@cli.command()
@click.argument("prompt", nargs=-1, required=True)
@click.option("--project-dir", "-d", default=".", help="Project directory")
@click.option("--verbose", "-v", is_flag=True, help="Verbose output")
def ask(prompt, project_dir, verbose):
    """Run a single prompt with no chat history and print the answer."""
    config = _load(project_dir, verbose)
    bot = build_bot(config)
    try:
        answer = bot.loop.run_prompt(" ".join(prompt))
    except Exception as error:
        console.print(f"[red]Error: {error}[/red]")
        sys.exit(1)
    console.print(answer)


if __name__ == "__main__":
    cli()
