"""Platform ingestion: URL parsing, REST client and signal aggregation."""
