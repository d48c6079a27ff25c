"""Composition root: builds the clients, store, orchestrator and engine once per process"""

import logging
from typing import Any, Dict

from ragtrader.analysis import DeepSeekAnalyzer, OpenAIMarketAnalyzer
from ragtrader.api_clients import RoostooClient
from ragtrader.config import ConfigManager
from ragtrader.rag import StrategyOrchestrator, VectorStore
from ragtrader.trading import TradingEngine

logger = logging.getLogger(__name__)


class TradingBot:
    """
    Owns every long-lived object of one bot instance

    Use as an async context manager so HTTP sessions are opened and closed
    together:

        async with TradingBot.from_config(config) as bot:
            await bot.engine.start()
    """

    def __init__(
        self,
        config: ConfigManager,
        exchange: RoostooClient,
        strategist: DeepSeekAnalyzer,
        market_analyst: OpenAIMarketAnalyzer,
        store: VectorStore,
    ):
        self.config = config
        self.exchange = exchange
        self.strategist = strategist
        self.market_analyst = market_analyst
        self.store = store
        # DeepSeek is both the strategy generator and the analyst
        self.orchestrator = StrategyOrchestrator(
            store=store,
            strategist=strategist,
            market_analyst=market_analyst,
            analyst=strategist,
            top_k=config.store.top_k,
        )
        self.engine = TradingEngine(exchange, self.orchestrator, config.trading)

    @classmethod
    def from_config(cls, config: ConfigManager) -> "TradingBot":
        config.warn_missing_credentials()
        return cls(
            config=config,
            exchange=RoostooClient.from_config(config.exchange),
            strategist=DeepSeekAnalyzer.from_config(config.deepseek),
            market_analyst=OpenAIMarketAnalyzer.from_config(config.openai),
            store=VectorStore(config.store.path),
        )

    async def __aenter__(self):
        await self.exchange.open()
        await self.strategist.client.open()
        await self.market_analyst.client.open()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.shutdown()

    async def shutdown(self) -> None:
        """Stop the engine, let in-flight cycles finish, close sessions."""
        if self.engine.is_running:
            await self.engine.stop()
        await self.engine.wait_for_cycles()

        await self.exchange.close()
        await self.strategist.client.close()
        await self.market_analyst.client.close()
        logger.info(f"💰 Reasoning API usage: {self.get_cost_stats()}")

    def get_cost_stats(self) -> Dict[str, Any]:
        return {
            "deepseek": self.strategist.client.get_cost_stats(),
            "openai": self.market_analyst.client.get_cost_stats(),
        }
