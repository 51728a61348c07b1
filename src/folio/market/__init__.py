"""External market-data resolution: function catalog, HTTP client, resolver."""
