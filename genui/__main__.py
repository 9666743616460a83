"""One-shot generation from the command line.

    python -m genui "a signup form with email and password" --intent "Build a form UI"
"""
import argparse
import asyncio
import json
import sys
from typing import List, Optional

from core.errors import GenUIError, error_payload

from genui.bootstrap import build_orchestrator
from genui.orchestrator import GenerationRequest


def parse_args(argv: Optional[List[str]] = None):
    """Parses command-line arguments."""
    parser = argparse.ArgumentParser(description="Generate a UI payload for the given input.")
    parser.add_argument("input", help="Input text, or a JSON document when --json-input is set.")
    parser.add_argument("--intent", required=True, help="Instruction giving the model its task.")
    parser.add_argument("--model", default=None, help="Logical size (small, large) or concrete model name.")
    parser.add_argument("--provider", default=None, help="Backend name. Default: AI_PROVIDER or availability probing.")
    parser.add_argument(
        "--json-input",
        action="store_true",
        help="Parse the input argument as JSON instead of sending it as plain text.",
    )
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    """Main execution function. Returns the process exit code."""
    args = parse_args(argv)
    try:
        payload = json.loads(args.input) if args.json_input else args.input
    except json.JSONDecodeError as e:
        print(f"Input is not valid JSON: {e}", file=sys.stderr)
        return 2

    request = GenerationRequest(input=payload, intent=args.intent, model=args.model, provider=args.provider)
    try:
        orchestrator = build_orchestrator()
        result = asyncio.run(orchestrator.generate(request))
    except GenUIError as e:
        print(json.dumps(error_payload(e)), file=sys.stderr)
        return 2 if e.category.http_status == 400 else 1

    print(json.dumps(result.to_dict(), indent=2, ensure_ascii=False))
    return 0


if __name__ == "__main__":
    sys.exit(main())
