"""
nous-llmchain demo CLI.

Usage:
  uv run examples/demo.py chain --input "graph databases"
  uv run examples/demo.py chain --input "graph databases" --interactive
  uv run examples/demo.py chain --replay runs/research.jsonl
  uv run examples/demo.py evaluate --model openai:gpt-4o-mini --model ollama:llama3 "Define entropy."
  uv run examples/demo.py embed --model openai:text-embedding-3-small

See also:
  uv run examples/demo.py --help
"""

from __future__ import annotations

import argparse
import asyncio
import logging
from pathlib import Path

from nous.llmchain import (
    ChainEngine,
    ClientBuilder,
    History,
    LLMChainError,
    ParallelEvaluator,
    RetryPolicy,
    RunState,
    load_chain,
)

_DEMO_CHAIN_PATH = Path(__file__).resolve().parent / "research.yaml"
_PRESET_EMBED_TEXT = "Hello, world."


def _prompt_choice(step_id: str, prompt: str) -> tuple[str, str | None]:
    print(f"\n--- step {step_id} is waiting ---\n{prompt}\n")
    while True:
        choice = input("[s]end, [e]dit, [r]eply yourself, s[k]ip: ").strip().lower()
        if choice in {"s", ""}:
            return "send", None
        if choice == "e":
            return "send", input("edited prompt: ")
        if choice == "r":
            return "reply", input("response: ")
        if choice == "k":
            return "skip", None


async def _drive(engine: ChainEngine, args: argparse.Namespace) -> int:
    replay = History.load(args.replay) if args.replay else None
    run = engine.start(args.input, replay=replay, history_path=args.history)
    state = await run.advance()
    while state == RunState.AWAITING_INTERACTION:
        pending = run.pending
        assert pending is not None
        action, text = _prompt_choice(pending.step_id, pending.prompt)
        if action == "reply":
            state = await run.resume(pending.token, response=text)
        elif action == "skip":
            state = await run.resume(pending.token, skip=True)
        else:
            state = await run.resume(pending.token, dispatch=True, prompt=text)

    result = run.result()
    for step_id, text in result.outputs.items():
        print(f"\n[{step_id}]\n{text}")
    if result.skipped:
        print(f"\nskipped: {', '.join(result.skipped)}")
    print(f"\nhistory: {args.history}")
    if result.failure is not None:
        raise SystemExit(f"{result.failure.type}: {result.failure.message}")
    return 0


def _cmd_chain(args: argparse.Namespace) -> int:
    if args.input is None and args.replay is None:
        raise SystemExit("either --input or --replay is required")
    chain = load_chain(args.chain)
    engine = ChainEngine(
        chain,
        retry=RetryPolicy(max_attempts=args.attempts, backoff_s=1.0),
        interactive=args.interactive,
    )
    return asyncio.run(_drive(engine, args))


def _cmd_evaluate(args: argparse.Namespace) -> int:
    backends = [(m, ClientBuilder.from_model_string(m).build()) for m in args.model]
    words = {w.lower() for w in args.keyword}
    evaluator = ParallelEvaluator(backends).scoring(lambda text: min(len(text) / 1000.0, 1.0))
    if words:
        evaluator.scoring(lambda text: sum(1.0 for w in words if w in text.lower()))

    results = asyncio.run(evaluator.evaluate_chat(args.prompt))
    for r in results:
        print(f"{r.label}: score={r.score:.3f} time={r.time_ms}ms")
    best = ParallelEvaluator.best(results)
    if best is None:
        raise SystemExit("every backend failed")
    print(f"\nbest: {best.label}\n{best.text}")
    return 0


def _cmd_embed(args: argparse.Namespace) -> int:
    client = ClientBuilder.from_model_string(args.model).build()
    resp = client.embed(_PRESET_EMBED_TEXT)
    if not resp.embeddings:
        raise SystemExit("missing embedding output")
    print(f"dims: {len(resp.embeddings[0])}")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="nous-llmchain demo")
    parser.add_argument("-v", "--verbose", action="store_true", help="log at INFO level")
    sub = parser.add_subparsers(dest="cmd", required=True)

    p_chain = sub.add_parser("chain", help=f"Run a chain (default: {_DEMO_CHAIN_PATH.name})")
    p_chain.add_argument("--chain", default=str(_DEMO_CHAIN_PATH), help="chain YAML/JSON file")
    p_chain.add_argument("--input", help="value bound to the chain's input variable")
    p_chain.add_argument("--replay", help="history file to restore recorded steps from")
    p_chain.add_argument("--history", default="runs/research.jsonl", help="history output path")
    p_chain.add_argument("--interactive", action="store_true", help="pause at interactive steps")
    p_chain.add_argument("--attempts", type=int, default=2, help="dispatch attempts per step")
    p_chain.set_defaults(_run=_cmd_chain)

    p_eval = sub.add_parser("evaluate", help="Send one prompt to several backends and pick the best")
    p_eval.add_argument("--model", action="append", required=True, help='repeatable, e.g. "openai:gpt-4o-mini"')
    p_eval.add_argument("--keyword", action="append", default=[], help="keyword worth one point when present")
    p_eval.add_argument("prompt")
    p_eval.set_defaults(_run=_cmd_evaluate)

    p_embed = sub.add_parser("embed", help="Embed preset text")
    p_embed.add_argument("--model", required=True, help='e.g. "openai:text-embedding-3-small"')
    p_embed.set_defaults(_run=_cmd_embed)

    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO if args.verbose else logging.WARNING)
    try:
        return int(args._run(args))
    except LLMChainError as e:
        raise SystemExit(f"{e.info.type}: {e.info.message}") from None


if __name__ == "__main__":
    raise SystemExit(main())
