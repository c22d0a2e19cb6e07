"""Prometheus instruments shared by the pipeline and the HTTP front-end."""

from __future__ import annotations

from prometheus_client import Counter, Histogram

REQ_LATENCY = Histogram("hesubs_request_seconds", "Request latency seconds", ["route"])
SEARCH_COUNT = Counter("hesubs_search_total", "Subtitle list requests", ["media_type"])
SERVED_COUNT = Counter("hesubs_served_total", "Caption assets served", ["route"])
CACHE_EVENTS = Counter("hesubs_cache_total", "Resolution cache lookups", ["stage", "event"])
STRATEGY_HITS = Counter("hesubs_strategy_hits_total", "Search strategy that produced candidates", ["strategy"])

__all__ = ["REQ_LATENCY", "SEARCH_COUNT", "SERVED_COUNT", "CACHE_EVENTS", "STRATEGY_HITS"]
