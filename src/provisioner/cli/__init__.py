"""Typer command-line interface (``provisioner``)."""
