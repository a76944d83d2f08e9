from prometheus_client import Counter, Gauge

feed_fetches = Counter(
    "ltp_feed_fetches", "Completed feed fetches (after retries)", ["result"]
)

feed_fetch_attempts = Counter(
    "ltp_feed_fetch_attempts", "Individual HTTP attempts made against the feed"
)

observations = Counter(
    "ltp_observations", "Track observations seen by the parser", ["kind"]
)

learning_cycles = Counter(
    "ltp_learning_cycles", "Learning loop cycles by outcome", ["result"]
)

learned_patterns = Gauge("ltp_learned_patterns", "Distinct learned train patterns")

predictions_served = Counter(
    "ltp_predictions", "Predictions returned to callers", ["method"]
)

store_commands = Counter("ltp_store_commands", "Pattern store commands", ["command"])
