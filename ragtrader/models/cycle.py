"""Engine status snapshot exposed to the dashboard/CLI"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from .decision import Decision
from .portfolio import PortfolioSnapshot


@dataclass(frozen=True)
class CycleRecord:
    cycle_count: int
    is_running: bool
    state: str
    interval_seconds: float
    last_decision: Optional[Decision] = None
    portfolio: Optional[PortfolioSnapshot] = None
    last_cycle_at: Optional[str] = None
    last_error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cycle_count": self.cycle_count,
            "is_running": self.is_running,
            "state": self.state,
            "interval_seconds": self.interval_seconds,
            "last_decision": self.last_decision.to_dict() if self.last_decision else None,
            "portfolio": self.portfolio.to_dict() if self.portfolio else None,
            "last_cycle_at": self.last_cycle_at,
            "last_error": self.last_error,
        }
