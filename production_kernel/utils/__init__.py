"""Utility modules for the production kernel."""
