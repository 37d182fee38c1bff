from prometheus_client import Counter, Histogram
# Prometheus metrics definitions

# Proximity search latency; bounding-box query plus distance filtering
_search_buckets = (
    0.005,
    0.01,
    0.025,
    0.05,
    0.1,
    0.25,
    0.5,
    1.0,
)

nearby_search_seconds = Histogram(
    "nearby_search_seconds", "Nearby farmer search latency", buckets=_search_buckets
)

nearby_results_total = Counter(
    "nearby_results_total", "Farmers returned by nearby searches"
)

# Conversation registry
conversations_created_total = Counter(
    "conversations_created_total", "Conversations created"
)

# Incremented when a concurrent create lost the unique-constraint race
conversation_race_total = Counter(
    "conversation_race_total", "Conversation creations resolved by re-lookup"
)

messages_sent_total = Counter(
    "messages_sent_total", "Messages appended to conversations"
)

# Requests rejected by participant checks
conversation_forbidden_total = Counter(
    "conversation_forbidden_total", "Non-participant conversation access attempts"
)

diag_requests_total = Counter(
    "diag_requests_total", "Total diagnosis requests"
)

__all__ = [
    "nearby_search_seconds",
    "nearby_results_total",
    "conversations_created_total",
    "conversation_race_total",
    "messages_sent_total",
    "conversation_forbidden_total",
    "diag_requests_total",
]
