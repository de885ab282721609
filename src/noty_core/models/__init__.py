"""Data models for the Noty core."""
