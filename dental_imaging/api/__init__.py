"""HTTP API for the dental imaging backend."""
