from prometheus_client import CollectorRegistry, Counter, Histogram, Gauge

registry = CollectorRegistry()

EVENTS_DECODED = Counter('replay_events_decoded_total', 'Raw replay records decoded into normalized events', registry=registry)
EVENTS_DROPPED = Counter('replay_events_dropped_total', 'Raw replay records dropped by the decoder', ['reason'], registry=registry)
SESSIONS_PARSED = Counter('replay_sessions_parsed_total', 'Sessions turned into semantic logs', registry=registry)
SESSION_PARSE_LATENCY = Histogram('replay_session_parse_seconds', 'Time to parse one session', registry=registry, buckets=(0.005,0.01,0.05,0.1,0.25,0.5,1,2,5))
LOG_ENTRIES = Counter('replay_log_entries_total', 'Semantic log entries emitted', registry=registry)
VALIDATION_FAILURES = Counter('replay_validation_failures_total', 'Events rejected by strict validation', ['reason'], registry=registry)

DETECTOR_RUNS = Counter('scoring_detector_runs_total', 'Signal detector invocations', ['detector'], registry=registry)
DETECTOR_FAILURES = Counter('scoring_detector_failures_total', 'Signal detector failures', ['detector'], registry=registry)
DETECTOR_LATENCY = Histogram('scoring_detector_latency_seconds', 'Signal detector latency', ['detector'], registry=registry, buckets=(0.01,0.05,0.1,0.5,1,2,5,10,30))
QUEUE_SIZE = Gauge('scoring_queue_size', 'Entries in the most recently built priority queue', registry=registry)
