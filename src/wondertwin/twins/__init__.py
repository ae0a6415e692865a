"""Runnable twins built on the twin kit."""
