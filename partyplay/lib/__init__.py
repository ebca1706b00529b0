"""Shared plumbing for the partyplay core, plugins and backends."""
