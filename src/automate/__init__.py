"""Automate: declarative preset runner and scheduler."""
