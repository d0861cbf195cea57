from __future__ import annotations

import argparse
import asyncio
import logging

from screenbot import config


async def _poll() -> None:
    from screenbot.main import build_components
    from screenbot.transport import poll_updates

    components = await build_components()
    projection_task = asyncio.create_task(components.projection.run())
    try:
        await poll_updates(components.transport, components.orchestrator)
    finally:
        projection_task.cancel()


def main(argv=None) -> None:
    parser = argparse.ArgumentParser(prog="screenbot", description="Telegram screening interview bot")
    sub = parser.add_subparsers(dest="mode")
    sub.add_parser("poll", help="long-poll Telegram for updates (default)")
    serve = sub.add_parser("serve", help="run the webhook HTTP server")
    serve.add_argument("--host", default="0.0.0.0")
    serve.add_argument("--port", type=int, default=8000)
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=config.LOG_LEVEL.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    if args.mode == "serve":
        import uvicorn

        uvicorn.run("screenbot.main:app", host=args.host, port=args.port)
        return

    try:
        asyncio.run(_poll())
    except KeyboardInterrupt:
        logging.getLogger("screenbot").info("Stopped")


if __name__ == "__main__":
    main()
