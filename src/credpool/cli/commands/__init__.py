"""Command groups for the credpool CLI."""
