import argparse
import asyncio
import json
import logging
import sys

from ragtrader.bot import TradingBot
from ragtrader.config import ConfigManager
from ragtrader.server import serve
from ragtrader.utils import LockManager, setup_logging
from ragtrader.utils.serialization import json_default


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="RAG Trading Bot CLI")
    parser.add_argument('--config', type=str, default='config.json', help='Path to JSON config file')
    parser.add_argument(
        '--mode', type=str, choices=['run', 'once', 'serve', 'status'], default='serve',
        help='run: trade on the interval; once: a single cycle; serve: dashboard API; status: show config',
    )
    parser.add_argument('--dry-run', action='store_true', help='Validate orders but never submit them')
    parser.add_argument('--log-level', type=str, default=None, help='Logging level (overrides config)')
    parser.add_argument('--lock-file', type=str, help='Custom path to lock file')
    return parser


async def run_until_cancelled(bot: TradingBot) -> None:
    await bot.engine.start()
    try:
        while True:
            await asyncio.sleep(3600)
    finally:
        await bot.engine.stop()


async def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = ConfigManager(args.config)
    except Exception as e:
        setup_logging(args.log_level or "INFO")
        logging.getLogger("ragtrader").error(f"Invalid configuration: {e}")
        return 1

    setup_logging(args.log_level or config.logging.level, config.logging.log_dir)
    logger = logging.getLogger("ragtrader")

    if args.dry_run:
        config.trading.dry_run = True
        logger.info("Dry-run mode enabled via CLI")

    if args.mode == 'status':
        config.warn_missing_credentials()
        print(json.dumps(config.to_dict(), indent=2))
        return 0

    try:
        config.validate_for_mode(args.mode)
    except ValueError as e:
        logger.error(str(e))
        return 1

    lock_manager = LockManager(args.lock_file)
    if not lock_manager.acquire():
        logger.error("Failed to acquire lock. Another instance might be running. Exiting.")
        return 1

    try:
        config.log_config_summary()
        async with TradingBot.from_config(config) as bot:
            if args.mode == 'once':
                report = await bot.engine.run_trading_cycle()
                print(json.dumps(report.to_dict() if report else None, indent=2, default=json_default))
            elif args.mode == 'run':
                await run_until_cancelled(bot)
            else:
                await serve(bot, config.server.host, config.server.port)
        return 0
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        return 1
    finally:
        lock_manager.release()


def cli() -> None:
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        sys.exit(130)


if __name__ == "__main__":
    cli()
