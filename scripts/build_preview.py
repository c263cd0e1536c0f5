#!/usr/bin/env python3
"""Build a .pptx deck from a supplier JSON file without the job queue."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

# Ensure project root is on sys.path when running this script directly
PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from dotenv import load_dotenv

from src.agents.deck_agent.pipeline import SlideSpecValidationError, run_deck_agent
from src.deck_generation.renderer import render_deck


def main() -> int:
    parser = argparse.ArgumentParser(description="Generate a deck from a JSON data file.")
    parser.add_argument("input", help="Path to the supplier JSON file.")
    parser.add_argument("--prompt", default="", help="Free-text instructions, e.g. 'medical clean'.")
    parser.add_argument("-o", "--output", help="Output .pptx path (default: <input>.pptx).")
    parser.add_argument("--spec-out", help="Optional path to write the validated slideSpec JSON.")
    parser.add_argument(
        "--offline",
        action="store_true",
        help="Skip every model call and build the deck from the deterministic draft only.",
    )
    parser.add_argument("--budget-ms", type=int, help="Override AGENT_BUDGET_MS for this run.")
    args = parser.parse_args()

    load_dotenv()
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    input_path = Path(args.input)
    if not input_path.exists():
        print(f"Input file not found: {input_path}", file=sys.stderr)
        return 2
    with input_path.open("r", encoding="utf-8") as f:
        data = json.load(f)

    budget_ms = 0 if args.offline else args.budget_ms
    try:
        result = run_deck_agent(args.prompt, data, budget_ms=budget_ms)
    except SlideSpecValidationError as e:
        print(f"Deck validation failed: {e}", file=sys.stderr)
        for issue in e.issues[:20]:
            print(f"  - slide {issue.slide_index} {issue.code}: {issue.message}", file=sys.stderr)
        return 1

    output = Path(args.output) if args.output else input_path.with_suffix(".pptx")
    output.write_bytes(render_deck(result.slide_spec))
    print(f"Wrote {output} ({len(result.slide_spec.slides)} slides, stages={result.stages})")

    if args.spec_out:
        Path(args.spec_out).write_text(
            json.dumps(result.to_dict(), ensure_ascii=False, indent=2), encoding="utf-8"
        )
        print(f"Wrote slideSpec to {args.spec_out}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
