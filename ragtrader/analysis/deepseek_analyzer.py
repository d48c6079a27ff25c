"""DeepSeek strategist/analyst: strategy ideas, quant metrics, synthesis and decisions"""

import logging
from typing import Any, Mapping, Optional, Sequence

from ragtrader.utils.serialization import dump

from .chat_client import ChatCompletionClient

logger = logging.getLogger(__name__)

STRATEGIST_SYSTEM = "You are an expert trading strategist. Provide actionable, risk-aware strategies in JSON format."
QUANT_SYSTEM = (
    "You are an expert quantitative analyst. Provide precise mathematical calculations and "
    "statistical analysis. Always return results in structured JSON format."
)
SENIOR_SYSTEM = (
    "You are a senior trading strategist. Provide concise, numerically grounded "
    "recommendations in JSON when possible."
)


class DeepSeekAnalyzer:
    """Strategy-generation and analysis collaborator backed by DeepSeek chat."""

    def __init__(self, client: ChatCompletionClient, temperature: float = 0.2, max_tokens: int = 4000):
        self.client = client
        self.temperature = temperature
        self.max_tokens = max_tokens

    @classmethod
    def from_config(cls, deepseek_config) -> "DeepSeekAnalyzer":
        client = ChatCompletionClient(
            service_name="deepseek",
            api_key=deepseek_config.api_key,
            model=deepseek_config.model,
            base_url=deepseek_config.base_url,
            input_cost_per_mtok=deepseek_config.input_cost_per_mtok,
            output_cost_per_mtok=deepseek_config.output_cost_per_mtok,
        )
        return cls(client, temperature=deepseek_config.temperature, max_tokens=deepseek_config.max_tokens)

    async def get_strategies(self, context: Mapping[str, Any]) -> str:
        prompt = f"""You are an expert trading strategist. Analyze the following market context and provide trading strategies:

Market Conditions: {context.get('market_conditions', '')}
Current Portfolio: {dump(context.get('portfolio', {}))}
Active Positions: {dump(context.get('current_positions', []))}
Market Data: {dump(context.get('market_data', {}))}

Provide 3-5 specific trading strategies with:
1. Strategy name and description
2. Entry conditions
3. Exit conditions
4. Risk management parameters
5. Expected outcomes

Format the response as structured JSON with clear strategy definitions."""

        text = await self.client.complete(
            prompt,
            system=STRATEGIST_SYSTEM,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            operation="Get strategies",
        )
        logger.info(f"🧠 DeepSeek returned strategies ({len(text)} chars)")
        return text

    async def compute_metrics(self, data: Mapping[str, Any], calculations: Optional[Sequence[str]] = None) -> str:
        requested = ", ".join(calculations) if calculations else "Calculate RSI, MACD, Bollinger Bands, and risk metrics"
        prompt = f"""You are a quantitative analyst. Perform the following calculations on the provided market data:

Requested Calculations: {requested}

Market Data:
{dump(data)}

Provide:
1. Technical indicators (RSI, MACD, Bollinger Bands, Moving Averages)
2. Risk metrics (VaR, Sharpe ratio, volatility)
3. Position sizing recommendations
4. Stop loss and take profit levels
5. Probability assessments for different scenarios

Format all results as structured JSON with numerical values and confidence intervals where applicable."""

        text = await self.client.complete(
            prompt,
            system=QUANT_SYSTEM,
            temperature=0.1,
            max_tokens=self.max_tokens,
            operation="Compute metrics",
        )
        logger.info(f"📐 DeepSeek computed metrics: {requested}")
        return text

    async def synthesize(self, inputs: Mapping[str, Any]) -> str:
        prompt = f"""Synthesize a unified trading strategy from the following inputs:

Trading Strategies:
{dump(inputs.get('strategies', []))}

Market Data:
{dump(inputs.get('market_data', {}))}

Quantitative Metrics:
{dump(inputs.get('metrics', {}))}

Create a coherent trading strategy that:
1. Integrates insights from all sources
2. Resolves any conflicts between signals
3. Provides clear entry/exit conditions
4. Includes risk management parameters
5. Has a confidence score (0-1)

Format as structured JSON with: strategy, entry, exit, risk, confidence."""

        return await self.client.complete(
            prompt,
            system=SENIOR_SYSTEM,
            temperature=self.temperature,
            max_tokens=2500,
            operation="Synthesize strategy",
        )

    async def decide(self, strategy: Any, portfolio: Any) -> str:
        strategy_text = strategy if isinstance(strategy, str) else dump(strategy)
        prompt = f"""Based on this synthesized strategy and current portfolio, make a trading decision:

Synthesized Strategy:
{strategy_text}

Current Portfolio:
{dump(portfolio)}

Provide a decision with:
1. Action: BUY, SELL, or HOLD
2. Symbol (if BUY/SELL), as a BASE/QUOTE pair such as BTC/USD
3. Quantity (if BUY/SELL)
4. Confidence level (0-1)
5. Reasoning
6. Risk assessment

Respond with a single JSON object:
{{
  "action": "BUY" | "SELL" | "HOLD",
  "symbol": "<pair or null>",
  "quantity": <number>,
  "confidence": <number 0-1>,
  "reasoning": "<explanation>",
  "risk_assessment": "<text>"
}}

Return ONLY valid JSON."""

        return await self.client.complete(
            prompt,
            system=SENIOR_SYSTEM,
            temperature=self.temperature,
            max_tokens=2500,
            operation="Make decision",
        )
