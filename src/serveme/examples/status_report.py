"""
Print the access status of every saved server.

Logs in if there is no stored session. Configure it with environment
variables or a .env file:

    SERVEME_SERVER_URL=https://api.example.com
    SERVEME_USERNAME=alice
    SERVEME_PASSWORD=...

Usage: python -m serveme.examples.status_report [server-id ...]
"""

import asyncio
import logging
import os
import sys

from dotenv import load_dotenv

from serveme.app import ServeMeApp
from serveme.auth.models.errors import ServiceError, user_message
from serveme.config import ClientConfig
from serveme.servers.models import ServerRecord
from serveme.utils.format import format_remaining_time


def render(servers: list[ServerRecord]) -> list[str]:
    lines = []
    for record in servers:
        line = f"{record.identifier:<24} {record.status.value}"
        remaining = format_remaining_time(record.time_remaining)
        if remaining:
            line += f" ({remaining} left)"
        lines.append(line)
    return lines


async def report(app: ServeMeApp, add: list[str]) -> list[str]:
    """Log in if needed, add any new servers, sync and render the list."""
    if not app.session.is_authenticated:
        username = os.getenv("SERVEME_USERNAME", "")
        password = os.getenv("SERVEME_PASSWORD", "")
        if not username or not await app.session.login(username, password):
            return [app.session.error_message or "Please Log In"]

    for server_id in add:
        if app.servers.get(server_id) is None:
            try:
                await app.servers.add(server_id)
            except ServiceError as e:
                logging.warning(f"Could not add {server_id}: {user_message(e)}")

    await app.servers.sync_all()
    return render(app.servers.servers)


async def main(argv: list[str]) -> int:
    async with ServeMeApp(ClientConfig.from_env()) as app:
        for line in await report(app, argv):
            print(line)
    return 0


if __name__ == "__main__":
    load_dotenv()
    logging.basicConfig(level=logging.INFO)
    sys.exit(asyncio.run(main(sys.argv[1:])))
