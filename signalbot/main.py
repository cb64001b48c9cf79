"""SignalBot — application entry point.

Boots the FastAPI internal server alongside the monitoring engine and
provides the CLI entry point.
"""

import logging

logger = logging.getLogger("signalbot")


# ── CLI ──────────────────────────────────────────────────────────────────


def _run_cli() -> None:
    """Parse CLI arguments and start the bot."""
    import argparse
    import asyncio
    import pathlib
    import signal

    from signalbot.config import load_config, load_instruments
    from signalbot.orchestrator import BotOrchestrator
    from signalbot.repos.db import init_db

    parser = argparse.ArgumentParser(description="SignalBot crypto signal generator")
    parser.add_argument("--env", help="Path to a .env file (default: ./.env)")
    parser.add_argument(
        "--instruments",
        help="Path to the instrument list (default: ./signalbot.json)",
    )
    parser.add_argument(
        "--engine-only",
        action="store_true",
        help="Run the monitoring engine without the API server",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single monitoring cycle and exit",
    )
    args = parser.parse_args()

    config = load_config(args.env)

    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    init_db(config.db_path)

    instruments_path = pathlib.Path(args.instruments) if args.instruments else None
    instruments = load_instruments(config, instruments_path)

    orchestrator = BotOrchestrator(config=config, instruments=instruments)
    orchestrator.build()

    def handle_shutdown(signum, frame):
        logger.info("SIGINT received, finishing the current cycle.")
        orchestrator.stop()

    signal.signal(signal.SIGINT, handle_shutdown)

    if args.once:
        asyncio.run(_run_engine_only(orchestrator, max_cycles=1))
    elif args.engine_only:
        asyncio.run(_run_engine_only(orchestrator))
    else:
        asyncio.run(_run_with_api(orchestrator, port=config.health_port))


async def _run_with_api(orchestrator, port: int = 8080) -> None:
    """Start the API server and the monitoring engine concurrently."""
    import asyncio

    import uvicorn

    from signalbot.api.routers import create_app

    logger.info(
        "Starting SignalBot with %d instrument(s).",
        len(orchestrator.engine.instruments),
    )

    uvi_config = uvicorn.Config(
        create_app(orchestrator),
        host="0.0.0.0",
        port=port,
        log_level="info",
    )
    server = uvicorn.Server(uvi_config)

    async def _run_server():
        await server.serve()
        # uvicorn owns SIGINT while serving; stop the engine with it
        orchestrator.stop()

    async def _run_engine():
        await orchestrator.start()

    logger.info("Internal API available at http://localhost:%d", port)
    results = await asyncio.gather(
        _run_server(),
        _run_engine(),
        return_exceptions=True,
    )
    logger.info("SignalBot stopped. Results: %s", results)


async def _run_engine_only(orchestrator, max_cycles: int = 0) -> None:
    """Run the monitoring engine without the API server."""
    logger.info(
        "Starting SignalBot engine (no API) with %d instrument(s).",
        len(orchestrator.engine.instruments),
    )
    results = await orchestrator.start(max_cycles=max_cycles)
    if max_cycles:
        for cycle in results:
            for item in cycle:
                logger.info("%s on %s: %s", item["pair"], item["exchange"], item["action"])
    logger.info("SignalBot engine stopped.")


if __name__ == "__main__":
    _run_cli()
