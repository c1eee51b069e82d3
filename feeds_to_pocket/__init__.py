"""Send entries from RSS and Atom feeds to a Pocket reading list."""

__version__ = "0.1.0"

USER_AGENT = f"feeds-to-pocket/{__version__}"

__all__ = ["USER_AGENT", "__version__"]
