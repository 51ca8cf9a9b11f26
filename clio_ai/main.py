# main.py
from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import List, Optional

from loguru import logger

from clio_ai import __version__
from clio_ai.adapters.factory import AdapterFactory
from clio_ai.commands import CommandRouter
from clio_ai.config_home import Settings, resolve_settings
from clio_ai.conversation import ConversationManager, RetryPolicy, TurnOutcome
from clio_ai.errors import BusyError, ModelNotFound
from clio_ai.logging_setup import configure_logging
from clio_ai.models import ModelRegistry
from clio_ai.tools.executor import ToolExecutor


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="clio-ai",
        description="clio-ai - local-first CLI agent that turns prompts into file operations",
    )
    parser.add_argument("prompt", nargs="?", help="Single-shot prompt (omit for the REPL)")
    parser.add_argument("--root", default=None, help="Project root the agent may touch (default: cwd)")
    parser.add_argument("--model", default=None, help="Model id to start with (default: MODEL or built-in)")
    parser.add_argument("--no-stream", action="store_true", help="Wait for whole responses instead of streaming")
    parser.add_argument("--verbose", action="store_true", help="Also log to stderr at DEBUG level")
    parser.add_argument("--log-file", default=None, help="Log file or directory (default: ~/.clio-ai/logs/clio.log)")
    parser.add_argument("--version", action="version", version=f"clio-ai {__version__}")
    return parser


def build_registry(settings: Settings) -> ModelRegistry:
    if settings.models_file:
        return ModelRegistry.from_file(settings.models_file)
    return ModelRegistry()


def report(outcome: TurnOutcome) -> None:
    """Print replies and per-action results."""
    for reply in outcome.replies:
        print(f"\n{reply}")
    for result in outcome.results:
        print(f"  {result}")
    for skipped in outcome.skipped:
        print(f"  ✗ skipped: {skipped.reason}")
    print(f"\n{outcome.explanation}\n")


def run_prompt(manager: ConversationManager, prompt: str, stream: bool) -> TurnOutcome:
    printed: List[str] = []

    def on_chunk(text: str) -> None:
        printed.append(text)
        sys.stdout.write(text)
        sys.stdout.flush()

    outcome = manager.submit(prompt, stream=stream, on_chunk=on_chunk if stream else None)
    if printed:
        sys.stdout.write("\n")
    # streamed text is the raw directive; the parsed reply follows
    report(outcome)
    return outcome


def repl(manager: ConversationManager, router: CommandRouter, stream: bool) -> int:
    print(f"clio-ai v{__version__} | Model: {manager.active_model.id} | /help for commands")
    while True:
        try:
            line = input(">>> ").strip()
        except (KeyboardInterrupt, EOFError):
            print()
            break
        if not line:
            continue
        routed = router.route(line)
        for out in routed.output:
            print(out)
        if routed.quit:
            break
        if not routed.is_prompt:
            continue
        try:
            run_prompt(manager, line, stream)
        except BusyError as e:
            print(f"Error: {e.message}")
        except KeyboardInterrupt:
            logger.info("REPL: prompt interrupted")
            print("\nInterrupted.")
    manager.shutdown()
    logger.info("REPL exit")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = resolve_settings()
    configure_logging("DEBUG" if args.verbose else settings.log_level, console=args.verbose, log_file=args.log_file)
    logger.info("clio-ai {} starting (root={})", __version__, args.root or ".")

    try:
        registry = build_registry(settings)
        executor = ToolExecutor(Path(args.root) if args.root else Path.cwd())
        manager = ConversationManager(
            registry,
            AdapterFactory(settings),
            executor,
            model_id=args.model or settings.model,
            retry_policy=RetryPolicy(max_retries=settings.max_retries),
            timeout=settings.timeout,
            max_rounds=settings.max_rounds,
            stream=not args.no_stream,
        )
    except (ModelNotFound, NotADirectoryError, FileNotFoundError, ValueError) as e:
        logger.error("startup failed: {}", e)
        print(f"Error: {e}", file=sys.stderr)
        return 2

    if args.prompt:
        outcome = run_prompt(manager, args.prompt, not args.no_stream)
        manager.shutdown()
        return 0 if outcome.ok else 1
    return repl(manager, CommandRouter(manager, settings), not args.no_stream)


if __name__ == "__main__":
    sys.exit(main())
