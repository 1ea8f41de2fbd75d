"""Backend implementations."""
