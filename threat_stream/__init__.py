"""Security news, breach and vulnerability stream aggregator."""
