"""poller-foundry: resumable polling of paginated HTTP APIs."""

__version__ = "1.0.0"
