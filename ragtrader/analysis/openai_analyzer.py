"""OpenAI market-context collaborator: news, market data and sentiment for symbols"""

import logging
from typing import Optional, Sequence, Union

from ragtrader.utils.errors import ConfigurationError

from .chat_client import ChatCompletionClient

logger = logging.getLogger(__name__)

Symbols = Union[str, Sequence[str]]


def _symbol_list(symbols: Symbols) -> str:
    if isinstance(symbols, str):
        return symbols
    return ", ".join(symbols)


class OpenAIMarketAnalyzer:
    """Asks an OpenAI chat model for market context around a set of symbols."""

    def __init__(self, client: Optional[ChatCompletionClient], temperature: float = 0.3, max_tokens: int = 3000):
        self.client = client
        self.temperature = temperature
        self.max_tokens = max_tokens

    @classmethod
    def from_config(cls, openai_config) -> "OpenAIMarketAnalyzer":
        client = ChatCompletionClient(
            service_name="openai",
            api_key=openai_config.api_key,
            model=openai_config.model,
            base_url=openai_config.base_url,
            input_cost_per_mtok=openai_config.input_cost_per_mtok,
            output_cost_per_mtok=openai_config.output_cost_per_mtok,
        )
        return cls(client, temperature=openai_config.temperature, max_tokens=openai_config.max_tokens)

    def _ensure_configured(self) -> ChatCompletionClient:
        if self.client is None or not self.client.api_key:
            raise ConfigurationError("OpenAI API key not configured", "OPENAI_API_KEY")
        if not self.client.model:
            raise ConfigurationError("OpenAI model identifier not configured", "OPENAI_MODEL")
        return self.client

    async def get_news(self, symbols: Symbols) -> str:
        client = self._ensure_configured()
        listed = _symbol_list(symbols)
        prompt = f"""Provide the latest financial news and market sentiment for the following symbols: {listed}

Include:
1. Recent news headlines
2. Market sentiment (bullish/bearish/neutral)
3. Key events affecting these symbols
4. Price action context
5. Volume and volatility indicators

Format as structured JSON with timestamp, source credibility, and impact assessment."""

        text = await client.complete(
            prompt,
            system="You are a financial news analyst. Provide accurate, timely, and structured financial news information.",
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            operation="Get news",
        )
        logger.info(f"📰 Retrieved financial news for {listed}")
        return text

    async def get_market_data(self, symbols: Symbols) -> str:
        client = self._ensure_configured()
        listed = _symbol_list(symbols)
        prompt = f"""Provide comprehensive market data and analysis for: {listed}

Include:
1. Current price levels and trends
2. Technical indicators (support/resistance levels)
3. Volume analysis
4. Market structure and patterns
5. Comparative analysis across symbols
6. Historical context where relevant

Format as structured JSON with numerical data and categorical assessments."""

        text = await client.complete(
            prompt,
            system="You are a quantitative market analyst. Provide detailed, data-driven market analysis.",
            temperature=0.2,
            max_tokens=4000,
            operation="Get market data",
        )
        logger.info(f"📈 Retrieved market data for {listed}")
        return text

    async def get_sentiment(self, symbols: Symbols) -> str:
        client = self._ensure_configured()
        prompt = f"""Analyze overall market sentiment for: {_symbol_list(symbols)}

Provide:
1. Overall sentiment score (-1 to 1)
2. Fear/Greed index assessment
3. Market positioning indicators
4. Risk appetite indicators
5. Short-term vs long-term sentiment

Format as structured JSON."""

        return await client.complete(
            prompt,
            temperature=self.temperature,
            max_tokens=1500,
            operation="Get sentiment",
        )
