"""Core domain logic for the marketplace workflow engine."""
