"""Logging and metrics for the node inventory agent."""
