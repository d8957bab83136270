"""Wire contract and request-boundary error handling."""
