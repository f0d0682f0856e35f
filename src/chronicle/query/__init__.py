"""Chronicle retrieval: query engine and the compound ask."""

from chronicle.query.assembler import AskConfig, AskResult, ask
from chronicle.query.retriever import QueryEngine, SearchFilters

__all__ = ["AskConfig", "AskResult", "QueryEngine", "SearchFilters", "ask"]
