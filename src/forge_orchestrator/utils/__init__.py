"""Shared utilities: async concurrency primitives and filesystem helpers."""
