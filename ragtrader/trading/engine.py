"""
Trading cycle engine

States: STOPPED -> INITIALIZING -> RUNNING -> STOPPED. While running, a timer
task fires a cycle every ``interval_seconds``. At most one cycle runs at a
time; a tick that arrives while a cycle is in flight is skipped.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Set

from ragtrader.models import CycleRecord, Decision, MarketSnapshot, Order, OrderResult, PortfolioSnapshot, Ticker
from ragtrader.utils.logging_utils import log_trade

from .risk_manager import calculate_stop_loss, calculate_take_profit, validate_order

logger = logging.getLogger(__name__)


class EngineState(str, Enum):
    STOPPED = "stopped"
    INITIALIZING = "initializing"
    RUNNING = "running"


@dataclass
class ExecutionResult:
    executed: bool
    reason: str = ""
    order: Optional[Order] = None
    order_id: Optional[str] = None
    dry_run: bool = False
    result: Optional[OrderResult] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "executed": self.executed,
            "reason": self.reason,
            "order": self.order.to_dict() if self.order else None,
            "order_id": self.order_id,
            "dry_run": self.dry_run,
        }


@dataclass
class CycleReport:
    cycle: int
    decision: Decision
    portfolio: PortfolioSnapshot
    market: MarketSnapshot
    execution: Optional[ExecutionResult] = None
    decision_degraded: bool = False
    started_at: str = ""
    finished_at: str = ""

    @property
    def executed(self) -> bool:
        return bool(self.execution and self.execution.executed)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cycle": self.cycle,
            "decision": self.decision.to_dict(),
            "decision_degraded": self.decision_degraded,
            "executed": self.executed,
            "execution": self.execution.to_dict() if self.execution else None,
            "portfolio": self.portfolio.to_dict(),
            "market": self.market.to_dict(),
            "started_at": self.started_at,
            "finished_at": self.finished_at,
        }


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class TradingEngine:
    """
    Owns the portfolio snapshot and sequences trading cycles

    Args:
        exchange: Exchange collaborator (see RoostooClient)
        orchestrator: Has ``execute_workflow(context)`` returning a WorkflowResult
        trading_config: TradingConfig with interval, symbols, limits and dry_run
    """

    def __init__(self, exchange, orchestrator, trading_config):
        self.exchange = exchange
        self.orchestrator = orchestrator
        self.config = trading_config

        self.state = EngineState.STOPPED
        self.cycle_count = 0
        self.last_decision: Optional[Decision] = None
        self.portfolio: Optional[PortfolioSnapshot] = None
        self.last_cycle_at: Optional[str] = None
        self.last_error: Optional[str] = None

        self._cycle_guard = asyncio.Semaphore(1)
        self._timer_task: Optional[asyncio.Task] = None
        self._cycle_tasks: Set[asyncio.Task] = set()

    @property
    def is_running(self) -> bool:
        return self.state == EngineState.RUNNING

    @property
    def cycle_in_progress(self) -> bool:
        return self._cycle_guard.locked()

    # ========================================================================
    # LIFECYCLE
    # ========================================================================

    async def start(self) -> None:
        """
        Initialize, run one cycle immediately and arm the interval timer

        Raises:
            Exception: Whatever initialization raised; the engine stays STOPPED
        """
        if self.state == EngineState.RUNNING:
            logger.warning("⚠️  Trading engine is already running")
            return
        if self.state == EngineState.INITIALIZING:
            logger.warning("⚠️  Trading engine is already starting")
            return

        self.state = EngineState.INITIALIZING
        logger.info("🔧 Initializing trading engine...")
        try:
            server_time = await self.exchange.get_server_time()
            logger.info(f"✅ Exchange connection OK (server time: {server_time})")
            self.portfolio = await self.fetch_portfolio()
            logger.info(f"💼 Initial portfolio: {self.portfolio}")
        except Exception as e:
            self.state = EngineState.STOPPED
            self.last_error = f"Initialization failed: {e}"
            logger.error(f"❌ Failed to initialize trading engine: {e}")
            raise

        if self.state != EngineState.INITIALIZING:
            logger.info("Trading engine was stopped during initialization")
            return

        self.state = EngineState.RUNNING
        self._spawn_cycle("Initial")
        self._timer_task = asyncio.create_task(self._timer_loop(), name="trading-timer")
        logger.info(f"🚀 Trading engine started (every {self.config.interval_seconds:g}s)")

    async def stop(self) -> None:
        """Disarm the timer. A cycle already in flight is left to finish."""
        if self.state == EngineState.STOPPED:
            logger.warning("⚠️  Trading engine is not running")
            return

        self.state = EngineState.STOPPED
        timer, self._timer_task = self._timer_task, None
        if timer and not timer.done():
            timer.cancel()
            try:
                await timer
            except asyncio.CancelledError:
                pass

        logger.info(f"🛑 Trading engine stopped after {self.cycle_count} cycles")

    async def wait_for_cycles(self) -> None:
        """Wait for cycles already spawned by the timer to finish."""
        while self._cycle_tasks:
            await asyncio.gather(*list(self._cycle_tasks), return_exceptions=True)

    async def _timer_loop(self) -> None:
        while self.state == EngineState.RUNNING:
            await asyncio.sleep(self.config.interval_seconds)
            if self.state != EngineState.RUNNING:
                break
            self._spawn_cycle("Scheduled")

    def _spawn_cycle(self, label: str) -> None:
        task = asyncio.create_task(self._run_cycle_logged(label))
        self._cycle_tasks.add(task)
        task.add_done_callback(self._cycle_tasks.discard)

    async def _run_cycle_logged(self, label: str) -> None:
        try:
            await self.run_trading_cycle()
        except Exception as e:
            logger.error(f"❌ {label} trading cycle failed: {e}")

    def get_status(self) -> CycleRecord:
        """Current status snapshot; never touches the network."""
        return CycleRecord(
            cycle_count=self.cycle_count,
            is_running=self.is_running,
            state=self.state.value,
            interval_seconds=self.config.interval_seconds,
            last_decision=self.last_decision,
            portfolio=self.portfolio,
            last_cycle_at=self.last_cycle_at,
            last_error=self.last_error,
        )

    # ========================================================================
    # DATA FETCHING
    # ========================================================================

    async def fetch_portfolio(self) -> PortfolioSnapshot:
        balances, pending_count, exchange_info = await asyncio.gather(
            self.exchange.get_balance(),
            self.exchange.get_pending_order_count(),
            self.exchange.get_exchange_info(),
        )
        open_orders = await self.exchange.query_order(pending_only=True)

        return PortfolioSnapshot(
            balances=dict(balances or {}),
            pending_order_count=int(pending_count or 0),
            open_orders=list(open_orders or []),
            exchange_info=dict(exchange_info or {}),
        )

    async def fetch_market_data(self, symbols: Optional[List[str]] = None) -> MarketSnapshot:
        """Tickers for ``symbols``; a symbol whose ticker fails is left out."""
        symbols = list(symbols or self.config.symbols)
        results = await asyncio.gather(
            *(self.exchange.get_market_ticker(symbol) for symbol in symbols),
            return_exceptions=True,
        )

        tickers: List[Ticker] = []
        for symbol, result in zip(symbols, results):
            if isinstance(result, Exception):
                logger.warning(f"⚠️  Failed to fetch ticker for {symbol}: {result}")
            elif isinstance(result, BaseException):
                raise result
            else:
                tickers.append(result)

        return MarketSnapshot(
            tickers=tickers,
            symbols=symbols,
            description=f"Market data for {', '.join(symbols)}",
        )

    # ========================================================================
    # CYCLE
    # ========================================================================

    async def run_trading_cycle(self) -> Optional[CycleReport]:
        """
        Run one fetch/decide/execute cycle

        Returns:
            CycleReport, or None when skipped because another cycle is running

        Raises:
            Exception: Fetch failures, after recording them in ``last_error``
        """
        if self._cycle_guard.locked():
            logger.warning("⏭️  Previous trading cycle still running, skipping this tick")
            return None

        async with self._cycle_guard:
            self.cycle_count += 1
            cycle = self.cycle_count
            started_at = _now_iso()
            cycle_start = time.time()
            logger.info(f"🔄 Starting trading cycle #{cycle}")

            try:
                self.portfolio = await self.fetch_portfolio()
                logger.debug(f"Portfolio: {self.portfolio}")

                market = await self.fetch_market_data()
                logger.debug(f"Market: {market}")

                workflow = await self.orchestrator.execute_workflow({
                    "symbols": market.symbols,
                    "portfolio": self.portfolio,
                    "market_data": {
                        "tickers": [t.raw or {"symbol": t.symbol, "last_price": t.last_price} for t in market.tickers],
                        "description": market.description,
                    },
                    "current_positions": self.portfolio.open_orders,
                })
                decision = workflow.decision
                self.last_decision = decision
                logger.info(f"🎯 Decision for cycle #{cycle}: {decision}")

                if decision.is_hold:
                    execution = ExecutionResult(executed=False, reason="HOLD decision")
                    logger.info(f"✅ Trading cycle #{cycle} completed - HOLD")
                else:
                    execution = await self.execute_decision(decision, market)
                    logger.info(f"✅ Trading cycle #{cycle} completed (executed: {execution.executed})")

            except Exception as e:
                self.last_error = f"Cycle #{cycle} failed: {e}"
                logger.error(f"❌ Trading cycle #{cycle} failed: {e}")
                raise

            self.last_error = None
            self.last_cycle_at = _now_iso()
            logger.debug(f"Cycle #{cycle} took {time.time() - cycle_start:.1f}s")
            return CycleReport(
                cycle=cycle,
                decision=decision,
                portfolio=self.portfolio,
                market=market,
                execution=execution,
                decision_degraded=getattr(workflow, "decision_degraded", False),
                started_at=started_at,
                finished_at=self.last_cycle_at,
            )

    def build_order(self, decision: Decision, market: Optional[MarketSnapshot] = None) -> Order:
        """
        Turn a BUY/SELL decision into an order with stop-loss/take-profit levels

        Levels come from the decision price, else the ticker's last price;
        without either the order carries no levels.
        """
        reference_price = decision.price
        if reference_price is None and market is not None:
            reference_price = market.price_for(decision.symbol)

        stop_loss = take_profit = None
        if reference_price:
            stop_loss = calculate_stop_loss(reference_price, decision.action, self.config.risk_per_trade)
            take_profit = calculate_take_profit(reference_price, decision.action)

        return Order(
            pair=decision.symbol,
            side=decision.action,
            order_type=decision.order_type,
            quantity=float(decision.quantity),
            price=decision.price,
            stop_loss=stop_loss,
            take_profit=take_profit,
        )

    async def execute_decision(self, decision: Decision, market: Optional[MarketSnapshot] = None) -> ExecutionResult:
        """
        Validate and submit the order for a decision

        Never raises; failures come back as ``executed=False`` with a reason.
        """
        if decision.is_hold:
            logger.info("Decision: HOLD - No action taken")
            return ExecutionResult(executed=False, reason="HOLD decision")

        try:
            order = self.build_order(decision, market)
        except (TypeError, ValueError) as e:
            logger.warning(f"⚠️  Invalid decision {decision}: {e}")
            return ExecutionResult(executed=False, reason="Invalid decision parameters")

        portfolio = self.portfolio or PortfolioSnapshot(balances={})
        validation = validate_order(order, portfolio, self.config.max_position_size)
        if not validation.valid:
            logger.warning(f"🚫 Order validation failed for {order}: {validation.reason}")
            return ExecutionResult(executed=False, reason=validation.reason, order=order)

        if self.config.dry_run:
            log_trade(
                logger,
                f"🏁 DRY RUN: would place {order} (SL: {order.stop_loss}, TP: {order.take_profit})",
            )
            return ExecutionResult(executed=False, reason="Dry run - order not submitted", order=order, dry_run=True)

        try:
            result = await self.exchange.place_order(order)
        except Exception as e:
            logger.error(f"❌ Failed to execute decision {decision}: {e}")
            return ExecutionResult(executed=False, reason=str(e), order=order)

        if not result.success:
            logger.error(f"❌ Order execution failed for {order}: {result.error_message}")
            return ExecutionResult(
                executed=False, reason=result.error_message or "Unknown error", order=order, result=result
            )

        log_trade(
            logger,
            f"💸 Order executed: {order} (id: {result.order_id}, SL: {order.stop_loss}, TP: {order.take_profit})",
        )

        try:
            self.portfolio = await self.fetch_portfolio()
        except Exception as e:
            logger.warning(f"⚠️  Order placed but portfolio refresh failed: {e}")

        return ExecutionResult(
            executed=True,
            reason="Order executed",
            order=order,
            order_id=result.order_id,
            result=result,
        )
