"""OmniChat: multi-modal chat backend."""
__version__ = "1.0.0"
