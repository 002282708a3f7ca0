"""Service layer for the dental imaging backend."""
