"""Stored strategy text with its similarity fingerprint"""

from dataclasses import dataclass, field
from typing import Any, Dict, List


@dataclass(frozen=True)
class StrategyRecord:
    """One entry of the append-only strategy log"""

    id: str
    text: str
    fingerprint: List[float]
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "text": self.text,
            "fingerprint": list(self.fingerprint),
            "metadata": dict(self.metadata),
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StrategyRecord":
        """
        Rebuild a record from its persisted form

        Raises:
            KeyError/TypeError/ValueError: If the entry is malformed
        """
        return cls(
            id=str(data["id"]),
            text=str(data["text"]),
            fingerprint=[float(v) for v in data["fingerprint"]],
            metadata=dict(data.get("metadata") or {}),
            created_at=str(data.get("created_at", "")),
        )
