"""Service layer for the Noty core."""
