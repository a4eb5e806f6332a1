"""Async watsonx.ai chat client with stream merging and a tool-execution loop."""

__version__ = "0.1.0"
