"""Command line interface for avatar cache maintenance."""
