"""twixelwall - a shared pixel canvas painted from live chat."""

__version__ = "0.1.0"
