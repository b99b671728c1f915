"""Settings, database sessions and HTTP-independent building blocks (CSRF, rate limits, tokens)."""
