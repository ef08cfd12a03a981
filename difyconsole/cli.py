from __future__ import annotations

import argparse
import asyncio
import json

from .client import ConsoleClient, create_client
from .constants import APP_VERSION
from .env import load_env, load_settings, setup_logging


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Dify console API client")
    parser.add_argument("--version", action="version", version=f"%(prog)s {APP_VERSION}")
    subparsers = parser.add_subparsers(dest="command", required=True)

    apps_cmd = subparsers.add_parser("apps", help="List all apps")
    apps_cmd.add_argument("--name", default=None, help="Filter apps by name")
    apps_cmd.add_argument("--mode", default=None, help="Filter apps by mode (chat, workflow, ...)")

    app_cmd = subparsers.add_parser("app", help="Show one app")
    app_cmd.add_argument("app_id")

    keys_cmd = subparsers.add_parser("api-keys", help="List API keys of an app")
    keys_cmd.add_argument("app_id")

    subparsers.add_parser("dataset-api-keys", help="List dataset API keys")
    return parser.parse_args(argv)


async def run_command(client: ConsoleClient, args: argparse.Namespace):
    if args.command == "apps":
        return await client.apps(name=args.name, mode=args.mode)
    if args.command == "app":
        return await client.app(args.app_id)
    if args.command == "api-keys":
        return await client.app_api_keys(args.app_id)
    return await client.dataset_api_keys()


async def _run(args: argparse.Namespace) -> None:
    async with create_client(load_settings()) as client:
        result = await run_command(client, args)
    print(json.dumps(result, indent=2, ensure_ascii=False))


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    load_env()
    setup_logging()
    asyncio.run(_run(args))


if __name__ == "__main__":
    main()
