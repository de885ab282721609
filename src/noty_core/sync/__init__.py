"""Sync channel transports."""
