import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from ragtrader.rag.orchestrator import (
    DEFAULT_CALCULATIONS,
    HOLD_FALLBACK_REASONING,
    MarketContext,
    Metrics,
    StrategyOrchestrator,
    SynthesizedStrategy,
)
from ragtrader.rag.vector_store import VectorStore
from ragtrader.utils.errors import CollaboratorError, PersistenceError


def _analyst(decision_reply='{"action": "HOLD", "confidence": 0.3}'):
    analyst = MagicMock()
    analyst.get_strategies = AsyncMock(return_value="Strategy: buy BTC momentum breakouts")
    analyst.compute_metrics = AsyncMock(return_value='{"rsi": 55}')
    analyst.synthesize = AsyncMock(
        return_value=json.dumps({
            "strategy": "Momentum", "entry": "RSI > 50", "exit": "RSI < 40", "risk": "Low", "confidence": 0.8,
        })
    )
    analyst.decide = AsyncMock(return_value=decision_reply)
    return analyst


def _market_analyst():
    market = MagicMock()
    market.get_news = AsyncMock(return_value="news text")
    market.get_market_data = AsyncMock(return_value="market text")
    market.get_sentiment = AsyncMock(return_value="sentiment text")
    return market


def _orchestrator(tmp_path, analyst=None, market=None):
    analyst = analyst or _analyst()
    store = VectorStore(str(tmp_path / "strategies.jsonl"))
    return StrategyOrchestrator(store, analyst, market or _market_analyst(), analyst), store


def _context():
    return {
        "symbols": ["BTC/USD", "ETH/USD"],
        "portfolio": {"balances": {"USD": 1000}},
        "market_data": {"tickers": [], "description": "Market data for BTC/USD, ETH/USD"},
        "current_positions": [],
    }


@pytest.mark.asyncio
async def test_workflow_returns_normalized_decision(tmp_path):
    analyst = _analyst('```json\n{"action": "buy", "symbol": "BTC/USD", "quantity": 0.01, "confidence": 0.9}\n```')
    orchestrator, store = _orchestrator(tmp_path, analyst=analyst)

    result = await orchestrator.execute_workflow(_context())

    assert result.decision.action == "BUY"
    assert result.decision.quantity == 0.01
    assert result.decision_degraded is False
    assert result.synthesized.strategy == "Momentum"
    assert result.synthesized.confidence == 0.8
    assert result.market_context.news == "news text"
    assert result.metrics.calculations == '{"rsi": 55}'
    # New strategy persisted with its source
    records = store.all_strategies()
    assert len(records) == 1
    assert records[0].metadata == {"source": "deepseek", "context": "Market data for BTC/USD, ETH/USD"}


@pytest.mark.asyncio
async def test_workflow_with_failing_analyst_still_holds(tmp_path):
    analyst = _analyst()
    error = CollaboratorError("deepseek", "Chat completion", 503, "unavailable")
    analyst.get_strategies.side_effect = error
    analyst.compute_metrics.side_effect = error
    analyst.synthesize.side_effect = error
    analyst.decide.side_effect = error
    orchestrator, _ = _orchestrator(tmp_path, analyst=analyst)

    result = await orchestrator.execute_workflow(_context())

    assert result.decision.action == "HOLD"
    assert result.decision.confidence == 0.0
    assert result.decision.reasoning == HOLD_FALLBACK_REASONING
    assert result.decision_degraded is True
    assert result.strategies.degraded is True
    assert result.metrics.degraded is True
    assert result.synthesized.degraded is True


@pytest.mark.asyncio
async def test_unparseable_or_invalid_decision_falls_back_to_hold(tmp_path):
    for reply in ["BUY everything now!", '{"action": "WAIT"}', '{"action": "BUY"}']:
        orchestrator, _ = _orchestrator(tmp_path, analyst=_analyst(reply))
        outcome = await orchestrator.make_decision(SynthesizedStrategy(strategy="s"), {})
        assert outcome.degraded is True
        assert outcome.decision.action == "HOLD"
        assert outcome.decision.confidence == 0.0


@pytest.mark.asyncio
async def test_retrieve_falls_back_to_similar_strategies(tmp_path):
    analyst = _analyst()
    analyst.get_strategies.side_effect = CollaboratorError("deepseek", "Get strategies")
    orchestrator, store = _orchestrator(tmp_path, analyst=analyst)
    store.add("market data for btc usd eth usd momentum")

    result = await orchestrator.retrieve_strategies({
        "market_conditions": "Market data for BTC/USD, ETH/USD",
        "portfolio": {},
        "market_data": {},
    })

    assert result.degraded is True
    assert result.new_strategy == ""
    assert result.similar == ["market data for btc usd eth usd momentum"]
    assert result.all_strategies == result.similar
    assert len(store) == 1


@pytest.mark.asyncio
async def test_retrieve_survives_store_write_failure(tmp_path, monkeypatch):
    orchestrator, store = _orchestrator(tmp_path)
    monkeypatch.setattr(store, "add", MagicMock(side_effect=PersistenceError("disk full")))

    result = await orchestrator.retrieve_strategies({"market_conditions": "x"})

    assert result.degraded is False
    assert result.new_strategy == "Strategy: buy BTC momentum breakouts"
    assert result.all_strategies == ["Strategy: buy BTC momentum breakouts"]


@pytest.mark.asyncio
async def test_market_context_failure_returns_empty_fields(tmp_path):
    market = _market_analyst()
    market.get_sentiment.side_effect = CollaboratorError("openai", "Get sentiment")
    orchestrator, _ = _orchestrator(tmp_path, market=market)

    context = await orchestrator.collect_market_context(["BTC/USD"])

    assert context.degraded is True
    assert (context.news, context.market_data, context.sentiment) == ("", "", "")


@pytest.mark.asyncio
async def test_calculate_metrics_uses_default_calculations(tmp_path):
    analyst = _analyst()
    orchestrator, _ = _orchestrator(tmp_path, analyst=analyst)

    metrics = await orchestrator.calculate_metrics({"news": "n"})

    analyst.compute_metrics.assert_awaited_once_with({"news": "n"}, DEFAULT_CALCULATIONS)
    assert metrics.degraded is False


@pytest.mark.asyncio
async def test_synthesis_fallback_summarizes_inputs(tmp_path):
    analyst = _analyst()
    analyst.synthesize.side_effect = RuntimeError("boom")
    orchestrator, _ = _orchestrator(tmp_path, analyst=analyst)

    synthesized = await orchestrator.synthesize_strategy(
        ["a", "b"], MarketContext(news="n", sentiment="s"), Metrics(calculations="")
    )

    assert synthesized.degraded is True
    assert synthesized.strategy == "Combined strategy from multiple sources"
    assert synthesized.risk == "Medium"
    assert synthesized.confidence == 0.5
    assert synthesized.sources == {"strategies": 2, "market_data": 2, "metrics": 0}


@pytest.mark.asyncio
async def test_unstructured_synthesis_is_passed_to_decision_as_text(tmp_path):
    analyst = _analyst()
    analyst.synthesize.return_value = "Go long BTC on pullbacks."
    orchestrator, _ = _orchestrator(tmp_path, analyst=analyst)

    result = await orchestrator.execute_workflow(_context())

    assert result.synthesized.strategy == "Go long BTC on pullbacks."
    assert analyst.decide.await_args.args[0] == "Go long BTC on pullbacks."


@pytest.mark.asyncio
async def test_structured_metrics_are_kept_as_json(tmp_path):
    analyst = _analyst()
    analyst.compute_metrics.return_value = {"rsi": 55, "macd": {"signal": "bullish"}}
    orchestrator, _ = _orchestrator(tmp_path, analyst=analyst)

    metrics = await orchestrator.calculate_metrics({})

    assert json.loads(metrics.calculations) == {"rsi": 55, "macd": {"signal": "bullish"}}
