"""
Strategy orchestration: retrieve, collect, calculate, synthesize, decide

Every stage returns a result object with a ``degraded`` flag. A stage whose
collaborator fails returns its documented default instead of raising, and
``execute_workflow`` always ends with a Decision (HOLD when deciding fails).
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence

from ragtrader.models import Decision
from ragtrader.trading.decision_normalizer import normalize_decision, parse_decision_reply
from ragtrader.utils.errors import PersistenceError
from ragtrader.utils.response_parser import ResponseParser
from ragtrader.utils.serialization import dump

from .vector_store import VectorStore

logger = logging.getLogger(__name__)

DEFAULT_CALCULATIONS = ["RSI", "MACD", "Bollinger Bands", "Moving Averages", "Risk Metrics"]
HOLD_FALLBACK_REASONING = "Error in decision making, defaulting to HOLD"


# ============================================================================
# STAGE RESULTS
# ============================================================================

@dataclass
class RetrievedStrategies:
    similar: List[str]
    new_strategy: str = ""
    degraded: bool = False
    error: Optional[str] = None

    @property
    def all_strategies(self) -> List[str]:
        if self.new_strategy:
            return self.similar + [self.new_strategy]
        return list(self.similar)


@dataclass
class MarketContext:
    news: str = ""
    market_data: str = ""
    sentiment: str = ""
    degraded: bool = False
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, str]:
        return {"news": self.news, "market_data": self.market_data, "sentiment": self.sentiment}


@dataclass
class Metrics:
    calculations: str = ""
    degraded: bool = False
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, str]:
        return {"calculations": self.calculations}


@dataclass
class SynthesizedStrategy:
    strategy: str
    entry: str = ""
    exit: str = ""
    risk: str = ""
    confidence: Optional[float] = None
    sources: Dict[str, int] = field(default_factory=dict)
    raw: Any = None
    degraded: bool = False
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "strategy": self.strategy,
            "entry": self.entry,
            "exit": self.exit,
            "risk": self.risk,
            "confidence": self.confidence,
        }
        if self.sources:
            data["sources"] = dict(self.sources)
        return data

    def prompt_input(self) -> Any:
        """What the decision step is shown: the model's own text when there is one."""
        if isinstance(self.raw, str) and self.raw:
            return self.raw
        return self.to_dict()


@dataclass
class DecisionOutcome:
    decision: Decision
    degraded: bool = False
    error: Optional[str] = None


@dataclass
class WorkflowResult:
    decision: Decision
    synthesized: Optional[SynthesizedStrategy] = None
    strategies: Optional[RetrievedStrategies] = None
    market_context: Optional[MarketContext] = None
    metrics: Optional[Metrics] = None
    decision_degraded: bool = False
    decision_error: Optional[str] = None


def _describe(e: BaseException) -> str:
    return str(e) or type(e).__name__


def _as_float(value: Any) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


# ============================================================================
# ORCHESTRATOR
# ============================================================================

class StrategyOrchestrator:
    """
    Runs the per-cycle reasoning workflow

    Args:
        store: Strategy store used for retrieval and for keeping new strategies
        strategist: Has ``get_strategies(context)``
        market_analyst: Has ``get_news``, ``get_market_data``, ``get_sentiment``
        analyst: Has ``compute_metrics``, ``synthesize``, ``decide``
        top_k: Number of similar strategies to retrieve
    """

    def __init__(self, store: VectorStore, strategist, market_analyst, analyst, top_k: int = 5):
        self.store = store
        self.strategist = strategist
        self.market_analyst = market_analyst
        self.analyst = analyst
        self.top_k = top_k

    async def retrieve_strategies(self, context: Mapping[str, Any]) -> RetrievedStrategies:
        market_conditions = str(context.get("market_conditions") or "")
        query = f"{market_conditions} {dump(context.get('portfolio', {}))} {dump(context.get('market_data', {}))}"

        similar = [record.text for record, _ in self.store.search_similar(query, self.top_k)]
        logger.info(f"🔎 Retrieved {len(similar)} similar strategies from store")

        try:
            new_strategy = await self.strategist.get_strategies(context)
        except Exception as e:
            logger.error(f"❌ Strategy generation failed, using stored strategies only: {_describe(e)}")
            return RetrievedStrategies(similar=similar, degraded=True, error=_describe(e))

        new_strategy = str(new_strategy or "")
        if new_strategy:
            try:
                strategy_id = self.store.add(new_strategy, {"source": "deepseek", "context": market_conditions})
                logger.info(f"💾 Stored new strategy {strategy_id}")
            except PersistenceError as e:
                logger.error(f"❌ New strategy kept in memory only: {e}")

        return RetrievedStrategies(similar=similar, new_strategy=new_strategy)

    async def collect_market_context(self, symbols: Sequence[str]) -> MarketContext:
        try:
            news, market_data, sentiment = await asyncio.gather(
                self.market_analyst.get_news(symbols),
                self.market_analyst.get_market_data(symbols),
                self.market_analyst.get_sentiment(symbols),
            )
        except Exception as e:
            logger.error(f"❌ Failed to collect market context: {_describe(e)}")
            return MarketContext(degraded=True, error=_describe(e))

        return MarketContext(news=str(news or ""), market_data=str(market_data or ""), sentiment=str(sentiment or ""))

    async def calculate_metrics(self, data: Mapping[str, Any], calculations: Optional[Sequence[str]] = None) -> Metrics:
        requested = list(calculations) if calculations else list(DEFAULT_CALCULATIONS)
        try:
            result = await self.analyst.compute_metrics(data, requested)
        except Exception as e:
            logger.error(f"❌ Failed to calculate metrics: {_describe(e)}")
            return Metrics(degraded=True, error=_describe(e))
        if result is None or isinstance(result, str):
            return Metrics(calculations=result or "")
        return Metrics(calculations=dump(result))

    @staticmethod
    def _fallback_synthesis(
        strategies: Sequence[str], market_context: MarketContext, metrics: Metrics, error: str
    ) -> SynthesizedStrategy:
        return SynthesizedStrategy(
            strategy="Combined strategy from multiple sources",
            entry="Based on technical indicators and market sentiment",
            exit="Based on risk metrics",
            risk="Medium",
            confidence=0.5,
            sources={
                "strategies": len(strategies),
                "market_data": sum(1 for v in market_context.to_dict().values() if v),
                "metrics": 1 if metrics.calculations else 0,
            },
            degraded=True,
            error=error,
        )

    async def synthesize_strategy(
        self, strategies: Sequence[str], market_context: MarketContext, metrics: Metrics
    ) -> SynthesizedStrategy:
        try:
            reply = await self.analyst.synthesize({
                "strategies": list(strategies),
                "market_data": market_context.to_dict(),
                "metrics": metrics.to_dict(),
            })
        except Exception as e:
            logger.error(f"❌ Failed to synthesize strategy, using fallback: {_describe(e)}")
            return self._fallback_synthesis(strategies, market_context, metrics, _describe(e))

        parsed = ResponseParser.extract_object(reply) if reply else None
        if parsed is None:
            logger.info(f"🧩 Synthesized strategy ({len(str(reply or ''))} chars, unstructured)")
            return SynthesizedStrategy(strategy=str(reply or ""), raw=reply)

        confidence = _as_float(parsed.get("confidence"))
        logger.info(f"🧩 Synthesized strategy (confidence: {parsed.get('confidence')})")
        return SynthesizedStrategy(
            strategy=str(parsed.get("strategy", "")),
            entry=str(parsed.get("entry", "")),
            exit=str(parsed.get("exit", "")),
            risk=str(parsed.get("risk", "")),
            confidence=confidence,
            raw=reply,
        )

    async def make_decision(self, synthesized: SynthesizedStrategy, portfolio: Any) -> DecisionOutcome:
        try:
            reply = await self.analyst.decide(synthesized.prompt_input(), portfolio)
            decision = normalize_decision(parse_decision_reply(reply))
        except Exception as e:
            logger.error(f"❌ Failed to make trading decision: {_describe(e)}")
            return DecisionOutcome(
                decision=Decision.hold(HOLD_FALLBACK_REASONING, confidence=0.0),
                degraded=True,
                error=_describe(e),
            )

        logger.info(f"🎯 Trading decision: {decision}")
        return DecisionOutcome(decision=decision)

    async def execute_workflow(self, context: Mapping[str, Any]) -> WorkflowResult:
        """
        Run all stages for one cycle

        Args:
            context: ``symbols``, ``portfolio``, ``market_data`` (with a
                ``description``) and ``current_positions``
        """
        symbols = list(context.get("symbols") or [])
        portfolio = context.get("portfolio") or {}
        market_data = context.get("market_data") or {}
        logger.info(f"🚀 Starting strategy workflow for {', '.join(symbols) or 'no symbols'}")

        try:
            strategies = await self.retrieve_strategies({
                "market_conditions": market_data.get("description", "") if isinstance(market_data, Mapping) else "",
                "portfolio": portfolio,
                "current_positions": context.get("current_positions") or [],
                "market_data": market_data,
            })
            market_context = await self.collect_market_context(symbols)

            metrics_input = dict(market_data) if isinstance(market_data, Mapping) else {"market_data": market_data}
            metrics_input.update(market_context.to_dict())
            metrics = await self.calculate_metrics(metrics_input)

            synthesized = await self.synthesize_strategy(strategies.all_strategies, market_context, metrics)
            outcome = await self.make_decision(synthesized, portfolio)
        except Exception as e:
            logger.exception(f"❌ Strategy workflow failed unexpectedly: {_describe(e)}")
            return WorkflowResult(
                decision=Decision.hold(HOLD_FALLBACK_REASONING, confidence=0.0),
                decision_degraded=True,
                decision_error=_describe(e),
            )

        logger.info(f"✅ Strategy workflow completed: {outcome.decision}")
        return WorkflowResult(
            decision=outcome.decision,
            synthesized=synthesized,
            strategies=strategies,
            market_context=market_context,
            metrics=metrics,
            decision_degraded=outcome.degraded,
            decision_error=outcome.error,
        )
