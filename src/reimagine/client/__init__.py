"""Python client for the Reimagine API: submission helpers and the status poller."""

from reimagine.client.poller import LIST_POLL_INTERVAL, SINGLE_POLL_INTERVAL, GenerationPoller

__all__ = ["GenerationPoller", "LIST_POLL_INTERVAL", "SINGLE_POLL_INTERVAL"]
