#!/usr/bin/env python3
"""
toolbox-core demo: load a toolset and call one of its tools.

    python examples/load_toolset.py --toolset my-toolset --tool get-n-rows --args '{"num_rows": "3"}'

The server URL comes from --url or TOOLBOX_URL (a .env file works too).
With --google-auth the client sends a Google ID token for the server URL,
which is what Cloud Run deployments expect.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
from typing import Any, Dict

from dotenv import load_dotenv

from toolbox_core import ToolboxClient, get_google_id_token

load_dotenv()


def format_tool_menu(tools) -> str:
    lines = ["Available tools:"]
    for t in tools:
        props = t.input_schema().get("properties", {})
        lines.append(f"- {t.name}({', '.join(props)}): {t.description}")
    return "\n".join(lines)


async def run(args: argparse.Namespace) -> None:
    headers: Dict[str, Any] = {}
    if args.google_auth:
        headers["Authorization"] = lambda: get_google_id_token(args.url)

    async with ToolboxClient(args.url, client_headers=headers) as client:
        tools = await client.load_toolset(args.toolset or None)
        print(format_tool_menu(tools))

        if not args.tool:
            return
        by_name = {t.name: t for t in tools}
        if args.tool not in by_name:
            raise SystemExit(f"Tool {args.tool!r} is not part of this toolset.")

        result = await by_name[args.tool](**json.loads(args.args))
        print(json.dumps(result, ensure_ascii=False, indent=2))


def main() -> None:
    parser = argparse.ArgumentParser(description="Load a Toolbox toolset and optionally invoke one tool.")
    parser.add_argument("--url", type=str, default=os.getenv("TOOLBOX_URL", "http://127.0.0.1:5000"), help="Toolbox server base URL.")
    parser.add_argument("--toolset", type=str, default="", help="Toolset name; empty loads the default toolset.")
    parser.add_argument("--tool", type=str, default="", help="Tool to invoke after loading.")
    parser.add_argument("--args", type=str, default="{}", help="JSON object of arguments for --tool.")
    parser.add_argument("--google-auth", action="store_true", help="Send a Google ID token for the server URL.")
    parser.add_argument("--verbose", action="store_true", help="Log requests made by the client.")
    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)
    asyncio.run(run(args))


if __name__ == "__main__":
    main()
