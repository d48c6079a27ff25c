from .vector_store import VectorStore, fingerprint, cosine_similarity
from .orchestrator import (
    StrategyOrchestrator,
    RetrievedStrategies,
    MarketContext,
    Metrics,
    SynthesizedStrategy,
    DecisionOutcome,
    WorkflowResult,
)

__all__ = [
    'VectorStore',
    'fingerprint',
    'cosine_similarity',
    'StrategyOrchestrator',
    'RetrievedStrategies',
    'MarketContext',
    'Metrics',
    'SynthesizedStrategy',
    'DecisionOutcome',
    'WorkflowResult',
]
