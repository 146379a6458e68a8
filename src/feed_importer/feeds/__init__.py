"""Feed fetching, parsing and media download."""
