"""TokenVault HTTP API."""
