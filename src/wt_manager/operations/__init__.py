"""Business logic behind the wt commands."""
