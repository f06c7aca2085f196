"""Interactive session: owns all mutable UI-side state and the turn worker.

The foreground (cli.py, or a test) calls submit_prompt() / handle_command() /
handle_review_key() and drains finished turns with poll_events().  A turn runs
on one daemon thread that only sees copies of its inputs and reports back by
putting exactly one TurnEvent on the queue.
"""

from __future__ import annotations

import dataclasses
import json
import queue
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, List, Optional, Sequence, Tuple, Union

from . import config, review, state
from .agent import AgentOutcome, build_context, format_create_log, format_read_log, run, summarize_turn
from .answer import extract_code_blocks, format_answer
from .config import AppConfig
from .edits import EditBatch, EditParseError, parse_edits
from .messages import Message, MessageKind
from .model import CompleteFn, ModelInfo, TransportError, complete as default_complete
from .model import list_models as default_list_models
from .utils import dbg, warn

WELCOME_MSG = "Welcome to Smol CLI. Describe a change, or type /help for commands."
HELP_MSG = "/login  /model  /clear  /undo  /stats  /quit"
REVIEW_HELP_MSG = "Review: y apply, n skip, b exit review."
MAX_MESSAGES = 200


@dataclass
class TurnEdits:
    prompt: str
    batch: EditBatch
    outcome: AgentOutcome


@dataclass
class TurnParseError:
    prompt: str
    error: str
    raw: str
    outcome: AgentOutcome


@dataclass
class TurnFailed:
    prompt: str
    error: str


TurnEvent = Union[TurnEdits, TurnParseError, TurnFailed]


def _raw_text(payload: Any) -> str:
    return payload if isinstance(payload, str) else json.dumps(payload, ensure_ascii=False)


def run_turn(
    cfg: AppConfig,
    repo_root: Path,
    prompt: str,
    memory: Sequence[str],
    complete: CompleteFn = default_complete,
) -> TurnEvent:
    """Plan, gather context, propose and parse edits. Never raises TransportError."""
    context = build_context(repo_root, memory)
    try:
        outcome = run(cfg, repo_root, prompt, context, complete=complete)
    except TransportError as exc:
        return TurnFailed(prompt=prompt, error=str(exc))
    payload = outcome.response.payload()
    try:
        batch = parse_edits(payload)
    except EditParseError as exc:
        return TurnParseError(prompt=prompt, error=str(exc), raw=_raw_text(payload), outcome=outcome)
    return TurnEdits(prompt=prompt, batch=batch, outcome=outcome)


def display_repo_path(path: Path) -> str:
    home = Path.home()
    try:
        return "~/" + str(path.relative_to(home))
    except ValueError:
        return str(path)


def _preset_models() -> List[ModelInfo]:
    return [ModelInfo(id=model_id, name=label) for label, model_id in config.PRESET_MODELS]


def display_cost(cost: Optional[float]) -> str:
    """Per-token USD price as $/M tokens."""
    return f"${cost * 1_000_000:.2f}/M" if cost is not None else "--"


def display_ctx(ctx: Optional[int]) -> str:
    if not ctx:
        return "--"
    if ctx % 1000 == 0:
        return f"{ctx // 1000}K"
    return f"{ctx / 1000:.1f}K"


class Session:
    def __init__(
        self,
        cfg: AppConfig,
        repo_root: Union[str, Path],
        state_dir: Optional[Path] = None,
        complete: CompleteFn = default_complete,
        list_models: Callable[[AppConfig], List[ModelInfo]] = default_list_models,
    ):
        self.cfg = cfg
        self.repo_root = Path(repo_root).resolve()
        self.state_dir = state_dir
        self.complete = complete
        self.list_models = list_models

        self.messages: List[Message] = []
        self.message_total = 0
        self.history: List[str] = []
        self.memory: List[str] = []
        self.undo_stack: List[review.BackupRecord] = []
        self.review: Optional[review.ReviewState] = None
        self.awaiting_response = False
        self.should_quit = False
        self.total_tokens_used = 0
        self.last_usage = None
        # last listing shown by /model; numbers pick from it
        self.models: Optional[List[ModelInfo]] = None

        self.events: "queue.Queue[TurnEvent]" = queue.Queue()
        self._worker: Optional[threading.Thread] = None

        if not self.cfg.api_key:
            self.add_message(
                MessageKind.WARN,
                "No API key found. Use /login or set OPENROUTER_API_KEY.",
            )
        self.add_message(MessageKind.INFO, WELCOME_MSG)
        self.add_message(MessageKind.INFO, f"You are using Smol CLI in {display_repo_path(self.repo_root)}")

    # --- messages ---------------------------------------------------------

    def add_message(self, kind: MessageKind, text: str) -> None:
        self.messages.append(Message(kind, text))
        self.message_total += 1
        if len(self.messages) > MAX_MESSAGES:
            del self.messages[: len(self.messages) - MAX_MESSAGES]
        if kind in (MessageKind.ERROR, MessageKind.WARN):
            dbg(f"{kind.value}: {text}")

    def messages_since(self, seen: int) -> Tuple[List[Message], int]:
        """Messages added after `seen` (a previous message_total), and the new total."""
        fresh = min(self.message_total - seen, len(self.messages))
        return (self.messages[-fresh:] if fresh > 0 else []), self.message_total

    # --- turns ------------------------------------------------------------

    def submit_prompt(self, text: str) -> bool:
        """Start a turn for `text`. True when a worker was started."""
        if self.awaiting_response:
            self.add_message(MessageKind.WARN, "Still waiting for the last response...")
            return False
        trimmed = (text or "").strip()
        if not trimmed:
            return False
        if trimmed.startswith("/"):
            self.handle_command(trimmed)
            return False
        if self.review is not None:
            self.add_message(MessageKind.WARN, "Finish or cancel the current review first. " + REVIEW_HELP_MSG)
            return False
        if not self.cfg.api_key:
            self.add_message(
                MessageKind.ERROR,
                "Missing OpenRouter API key. Set OPENROUTER_API_KEY or use /login.",
            )
            return False

        self.add_message(MessageKind.USER, trimmed)
        self.history.append(trimmed)
        try:
            state.append_prompt(trimmed)
        except OSError as exc:
            warn(f"failed to save prompt history: {exc}")
        self.awaiting_response = True

        cfg = dataclasses.replace(self.cfg)
        memory = list(self.memory)
        self._worker = threading.Thread(
            target=self._turn_worker,
            args=(cfg, self.repo_root, trimmed, memory),
            name="smol-turn",
            daemon=True,
        )
        self._worker.start()
        return True

    def _turn_worker(self, cfg: AppConfig, repo_root: Path, prompt: str, memory: List[str]) -> None:
        try:
            event = run_turn(cfg, repo_root, prompt, memory, complete=self.complete)
        except Exception as exc:
            event = TurnFailed(prompt=prompt, error=f"Turn failed: {exc}")
        self.events.put(event)

    def poll_events(self, timeout: float = 0.1) -> int:
        """Handle finished turns; waits up to `timeout` for the first one."""
        handled = 0
        try:
            event = self.events.get(timeout=timeout) if timeout else self.events.get_nowait()
        except queue.Empty:
            return 0
        while True:
            self.handle_async(event)
            handled += 1
            try:
                event = self.events.get_nowait()
            except queue.Empty:
                return handled

    def handle_async(self, event: TurnEvent) -> None:
        self.awaiting_response = False
        if isinstance(event, TurnFailed):
            self.add_message(MessageKind.ERROR, event.error)
            return

        outcome = event.outcome
        self._record_usage(outcome)
        self._log_outcome(outcome)
        summary = summarize_turn(event.prompt, outcome)

        if isinstance(event, TurnParseError):
            content = (outcome.response.content or "").strip()
            if outcome.is_informational and content:
                self._show_answer(content)
                self.add_message(MessageKind.TOOL, "Analysis complete.")
            else:
                self.add_message(MessageKind.ERROR, f"Model did not return valid edits: {event.error}")
                self.add_message(MessageKind.INFO, f"Raw response: {event.raw}")
                summary += "\nParse error."
            self._push_memory(summary)
            return

        batch = event.batch
        if batch.requests:
            dbg(f"edit reply carried context requests, not executed: {batch.requests}")
            self.add_message(
                MessageKind.TOOL,
                f"Ignored {len(batch.requests)} context request(s) in the edit reply.",
            )
        for answer in batch.answers:
            self._show_answer(answer)
        if batch.edits:
            review.begin_review(self, batch)
        elif not batch.answers:
            self.add_message(MessageKind.INFO, "No edits proposed.")
        self._push_memory(summary)

    def _show_answer(self, text: str) -> None:
        rendered = format_answer(text)
        if not rendered:
            return
        kind = MessageKind.DIFF if extract_code_blocks(text) else MessageKind.INFO
        self.add_message(kind, rendered)

    def _record_usage(self, outcome: AgentOutcome) -> None:
        usage = outcome.response.usage
        self.last_usage = usage
        if usage is not None and usage.total_tokens:
            self.total_tokens_used += usage.total_tokens

    def _log_outcome(self, outcome: AgentOutcome) -> None:
        for idx, step in enumerate(outcome.plan, 1):
            self.add_message(MessageKind.TOOL, f"{idx}. {step.description}")
        for log in outcome.creates:
            self.add_message(MessageKind.TOOL, "- " + format_create_log(log))
        for log in outcome.reads:
            self.add_message(MessageKind.TOOL, "- " + format_read_log(log))

    def _push_memory(self, entry: str) -> None:
        self.memory.append(entry)
        if len(self.memory) > config.MAX_MEMORY_ENTRIES:
            del self.memory[: len(self.memory) - config.MAX_MEMORY_ENTRIES]

    # --- review -----------------------------------------------------------

    def handle_review_key(self, key: str) -> None:
        key = (key or "").strip().lower()
        if self.review is None:
            return
        if key == "y":
            review.apply_current(self)
        elif key == "n":
            review.skip_current(self, "Skipped")
        elif key == "b":
            review.cancel_review(self)
        else:
            self.add_message(MessageKind.WARN, REVIEW_HELP_MSG)

    # --- commands ---------------------------------------------------------

    def handle_command(self, text: str) -> None:
        parts = text.split()
        cmd = parts[0] if parts else ""
        if cmd == "/help":
            self.add_message(MessageKind.INFO, HELP_MSG)
        elif cmd in ("/quit", "/exit"):
            self.should_quit = True
        elif cmd == "/clear":
            self.messages.clear()
            self.history.clear()
            self.memory.clear()
            self.total_tokens_used = 0
            try:
                state.clear_prompts()
            except OSError as exc:
                warn(f"failed to clear prompt history: {exc}")
            self.add_message(MessageKind.INFO, "History cleared.")
            self.add_message(MessageKind.INFO, WELCOME_MSG)
        elif cmd == "/stats":
            self.add_message(
                MessageKind.INFO,
                f"Messages: {len(self.history)}  Tokens used: {self.total_tokens_used}  Model: {self.cfg.model}",
            )
        elif cmd == "/undo":
            review.undo_last(self)
        elif cmd == "/login":
            if len(parts) == 2:
                self.set_api_key(parts[1])
            else:
                self.add_message(MessageKind.INFO, "Usage: /login <api-key>")
        elif cmd == "/model":
            self._model_command(parts[1:])
        else:
            self.add_message(MessageKind.WARN, "Unknown command. /help")

    def _model_command(self, args: List[str]) -> None:
        if not args:
            self._show_models()
            return
        if len(args) > 1:
            self.add_message(
                MessageKind.WARN,
                "Usage: /model [<number> | <provider/model>], e.g., x-ai/grok-4-fast:free",
            )
            return
        choice = args[0]
        if not choice.isdigit():
            self.set_model(choice)
            return
        models = self.models if self.models is not None else _preset_models()
        n = int(choice)
        if not 1 <= n <= len(models):
            self.add_message(MessageKind.ERROR, "Invalid model number")
            return
        picked = models[n - 1]
        self.set_model(picked.id)
        if picked.context_length or picked.prompt_cost is not None:
            self.add_message(
                MessageKind.INFO,
                f"{picked.name}: in {display_cost(picked.prompt_cost)} "
                f"out {display_cost(picked.completion_cost)} ctx {display_ctx(picked.context_length)}",
            )

    def _show_models(self) -> None:
        self.add_message(MessageKind.INFO, "Fetching models...")
        try:
            models = self.list_models(self.cfg)
        except TransportError as exc:
            self.add_message(MessageKind.ERROR, f"Failed to fetch models: {exc}")
            models = []
        if models:
            self.add_message(MessageKind.INFO, f"Loaded {len(models)} models.")
        else:
            self.add_message(MessageKind.WARN, "No models from the provider; showing presets.")
            models = _preset_models()
        self.models = models
        lines = [f"Current model: {self.cfg.model}"]
        for idx, info in enumerate(models, 1):
            marker = "*" if info.id == self.cfg.model else " "
            lines.append(f"{marker} {idx}. {info.name} ({info.id})")
        lines.append("Use /model <number> or /model <provider/model>.")
        self.add_message(MessageKind.INFO, "\n".join(lines))

    def _save_config(self) -> None:
        try:
            config.save_app_config(self.cfg)
        except OSError as exc:
            self.add_message(MessageKind.WARN, f"Failed to save settings: {exc}")

    def set_model(self, model_id: str) -> None:
        self.cfg.model = model_id
        self._save_config()
        self.add_message(MessageKind.INFO, f"Model set to {model_id}")

    def set_api_key(self, api_key: str) -> None:
        api_key = (api_key or "").strip()
        if not api_key:
            self.add_message(MessageKind.WARN, "Empty API key; nothing changed.")
            return
        self.cfg.api_key = api_key
        self._save_config()
        self.add_message(MessageKind.INFO, "API key saved.")
