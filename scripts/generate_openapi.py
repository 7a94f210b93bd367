#!/usr/bin/env python3
from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

import yaml

# Ensure project root is on sys.path when running from scripts/
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from chatroom.api.routes import app  # noqa: E402


def render(fmt: str) -> str:
    """Render the chat room OpenAPI schema as YAML or JSON text."""
    schema = app.openapi()
    if fmt == "yaml":
        return yaml.safe_dump(schema, sort_keys=False, allow_unicode=True)
    return json.dumps(schema, indent=2, ensure_ascii=False) + "\n"


def main() -> int:
    parser = argparse.ArgumentParser(description="Generate the OpenAPI schema of the chat room API.")
    parser.add_argument("--out", type=Path, default=Path("openapi.yaml"), help="Output file path (default: openapi.yaml)")
    parser.add_argument("--format", choices=["yaml", "json"], default="yaml", help="Output format (default: yaml)")
    parser.add_argument("--check", action="store_true", help="Exit 1 if the existing file differs instead of writing")
    args = parser.parse_args()

    text = render(args.format)
    if args.check:
        current = args.out.read_text(encoding="utf-8") if args.out.exists() else ""
        if current != text:
            print(f"{args.out} is out of date; regenerate with scripts/generate_openapi.py")
            return 1
        return 0

    args.out.parent.mkdir(parents=True, exist_ok=True)
    args.out.write_text(text, encoding="utf-8")
    print(f"OpenAPI schema written to {args.out} in {args.format.upper()} format")
    return 0


if __name__ == "__main__":
    sys.exit(main())
