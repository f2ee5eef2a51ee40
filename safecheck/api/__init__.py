"""HTTP API: public verification endpoint and owner routes."""
