"""HTTP transports and bootstrap resolvers for DoH lookups."""
