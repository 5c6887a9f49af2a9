"""Core primitives: errors, logging, settings, persistence plumbing."""
