#!/usr/bin/env python3
"""
Serve one bridge over stdio for desktop MCP clients.
Reads newline-delimited JSON-RPC requests from stdin and writes one response
line per request to stdout. The local operator is treated as the bridge owner.

    BRIDGE_SECRET=... python stdio_server.py bridges.json --bridge-id petstore
"""
import argparse
import asyncio
import json
import logging
import sys

from access_control import AccessGate
from bridge_models import Session
from config import Settings
from encryption import EncryptionService
from http_executor import HttpExecutor
from mcp_server import NOTIFICATION_PREFIX, McpServer
from stores import InMemoryBridgeStore, InMemoryTokenStore, load_bridges

logger = logging.getLogger(__name__)


def is_notification(line: str) -> bool:
    try:
        data = json.loads(line)
    except ValueError:
        return False
    return (
        isinstance(data, dict)
        and "id" not in data
        and isinstance(data.get("method"), str)
        and data["method"].startswith(NOTIFICATION_PREFIX)
    )


async def serve(server: McpServer, bridge_id: str, owner: Session, reader=None, writer=None):
    reader = reader or sys.stdin
    writer = writer or sys.stdout
    loop = asyncio.get_running_loop()
    while True:
        line = await loop.run_in_executor(None, reader.readline)
        if not line:
            break
        line = line.strip()
        if not line:
            continue

        _, response = await server.handle(line, bridge_id, session=owner)
        # stdio clients expect silence for notifications
        if is_notification(line):
            continue
        writer.write(json.dumps(response) + "\n")
        writer.flush()


async def main(argv=None):
    parser = argparse.ArgumentParser(description="Serve a bridge configuration over stdio")
    parser.add_argument("bridges_file", help="JSON file with one bridge or a list of bridges")
    parser.add_argument("--bridge-id", help="Bridge to serve (default: the first one in the file)")
    args = parser.parse_args(argv)

    settings = Settings.from_env()
    # stdout carries the protocol, logs go to stderr
    logging.basicConfig(level=settings.log_level, stream=sys.stderr,
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    bridges = load_bridges(args.bridges_file)
    if not bridges:
        logger.error("No bridges found in %s", args.bridges_file)
        return 1
    bridge = next((b for b in bridges if b.id == args.bridge_id), None) if args.bridge_id else bridges[0]
    if bridge is None:
        logger.error("Bridge %s not found in %s", args.bridge_id, args.bridges_file)
        return 1

    tokens = InMemoryTokenStore()
    server = McpServer(
        bridges=InMemoryBridgeStore([bridge], tokens=tokens),
        gate=AccessGate(tokens),
        encryption=EncryptionService(settings.bridge_secret),
        executor=HttpExecutor(default_timeout=settings.upstream_timeout_seconds),
    )
    logger.info("Serving bridge %s (%d endpoints) on stdio", bridge.id, len(bridge.endpoints))
    await serve(server, bridge.id, Session(userId=bridge.userId))
    return 0


if __name__ == "__main__":
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        pass
