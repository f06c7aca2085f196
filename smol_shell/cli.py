"""Smol CLI entrypoint: a line-oriented REPL over Session.

    smol [-v] [--root DIR] [--model ID] [--plain]
"""

import argparse
import sys
from pathlib import Path
from typing import Iterable, Optional

from prompt_toolkit import PromptSession
from prompt_toolkit.completion import WordCompleter
from prompt_toolkit.history import History, InMemoryHistory
from rich.console import Console
from rich.syntax import Syntax
from rich.text import Text

from . import config, state
from .config import load_app_config
from .diff import count_changes
from .messages import Message, MessageKind
from .session import REVIEW_HELP_MSG, Session

SLASH_COMMANDS = ["/help", "/login", "/model", "/clear", "/stats", "/undo", "/quit", "/exit"]

_STYLES = {
    MessageKind.USER: "bold cyan",
    MessageKind.INFO: "",
    MessageKind.WARN: "yellow",
    MessageKind.ERROR: "bold red",
    MessageKind.TOOL: "dim",
}


def _parse_args(argv: Optional[list] = None) -> argparse.Namespace:
    ap = argparse.ArgumentParser(prog="smol", description="Plan, propose and review code edits with an LLM.")
    ap.add_argument("-v", "--verbose", action="store_true", help="debug logging to stderr and the debug log")
    ap.add_argument("--root", default=None, help="repository root (default: current directory)")
    ap.add_argument("--model", default=None, help="model id, e.g. x-ai/grok-4-fast:free")
    ap.add_argument("--plain", action="store_true", help="no colours")
    return ap.parse_args(argv)


def _state_dir_for(root: Path) -> Path:
    if config.STATE_DIR:
        return Path(config.STATE_DIR).expanduser()
    return root / ".smol"


def render_message(console: Console, msg: Message) -> None:
    if msg.kind == MessageKind.DIFF:
        console.print(Syntax(msg.text, "diff", theme="ansi_dark", word_wrap=True))
        return
    prefix = "> " if msg.kind == MessageKind.USER else ""
    console.print(Text(prefix + msg.text, style=_STYLES.get(msg.kind, "")))


def render_review(console: Console, session: Session) -> None:
    review = session.review
    current = review.current_edit() if review is not None else None
    if current is None:
        return
    added, removed = count_changes(current.diff)
    title = f"Edit {review.index + 1}/{len(review.edits)}: {current.path} (+{added} -{removed})"
    console.rule(Text(title, style="bold"))
    if current.rationale:
        console.print(Text(current.rationale, style="italic"))
    console.print(Syntax(current.diff, "diff", theme="ansi_dark", word_wrap=True))


class StateHistory(History):
    """Up-arrow history backed by the prompts Session saves in the state file.

    Only prompts that started a turn are persisted (Session.submit_prompt);
    slash commands, review keys and secrets stay in memory for this run.
    """

    def load_history_strings(self) -> Iterable[str]:
        return reversed(state.get_recent_prompts(limit=config.MAX_PROMPT_HISTORY))

    def store_string(self, string: str) -> None:
        pass


class Repl:
    def __init__(self, session: Session, console: Console, input=None, output=None):
        self.session = session
        self.console = console
        self.seen = 0
        self._io = {"input": input, "output": output}
        self.prompt = self._main_prompt()
        # review keys: no history, no completion
        self.keys = PromptSession(history=InMemoryHistory(), **self._io)

    def _main_prompt(self) -> PromptSession:
        return PromptSession(
            history=StateHistory(),
            completer=WordCompleter(SLASH_COMMANDS, sentence=True),
            **self._io,
        )

    def read_secret(self, label: str) -> str:
        return PromptSession(history=InMemoryHistory(), **self._io).prompt(label, is_password=True)

    def flush(self) -> None:
        fresh, self.seen = self.session.messages_since(self.seen)
        for msg in fresh:
            render_message(self.console, msg)

    def wait_for_turn(self) -> None:
        with self.console.status("Thinking..."):
            while self.session.awaiting_response:
                self.session.poll_events(timeout=0.1)

    def step(self) -> None:
        session = self.session
        if session.awaiting_response:
            self.wait_for_turn()
            return
        if session.review is not None:
            render_review(self.console, session)
            key = self.keys.prompt("[y/n/b] ")
            session.handle_review_key(key)
            return

        text = self.prompt.prompt("smol> ").strip()
        if text == "/login":
            session.set_api_key(self.read_secret("API key: "))
            return
        session.submit_prompt(text)
        if text.split()[:1] == ["/clear"]:
            self.prompt = self._main_prompt()

    def loop(self) -> int:
        while not self.session.should_quit:
            self.flush()
            try:
                self.step()
            except KeyboardInterrupt:
                if self.session.review is not None:
                    self.console.print(Text(REVIEW_HELP_MSG, style="yellow"))
                continue
            except EOFError:
                break
        self.flush()
        return 0


def main(argv: Optional[list] = None) -> int:
    args = _parse_args(argv)
    if args.verbose:
        config.DEBUG = True

    root = Path(args.root or ".").expanduser()
    if not root.is_dir():
        print(f"Repository root not found: {root}", file=sys.stderr)
        return 2
    root = root.resolve()

    cfg = load_app_config()
    if args.model:
        cfg.model = args.model

    state_dir = _state_dir_for(root)
    console = Console(no_color=args.plain, highlight=False)
    session = Session(cfg, root, state_dir=state_dir)
    try:
        return Repl(session, console).loop()
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
