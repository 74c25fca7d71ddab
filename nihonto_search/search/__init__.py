from nihonto_search.search.compiler import BrowseParams, CompileContext, CompiledQuery, compile_query
from nihonto_search.search.facets import FacetAggregator, Facets
from nihonto_search.search.predicates import Dimension, PredicateSet
from nihonto_search.search.rerank import rerank_for_dealer_diversity
from nihonto_search.search.semantic_parser import parse_semantic_query

__all__ = [
    "BrowseParams",
    "CompileContext",
    "CompiledQuery",
    "Dimension",
    "FacetAggregator",
    "Facets",
    "PredicateSet",
    "compile_query",
    "parse_semantic_query",
    "rerank_for_dealer_diversity",
]
