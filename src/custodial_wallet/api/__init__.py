"""HTTP adapter for the wallet service."""
