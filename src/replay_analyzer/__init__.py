"""Session replay analysis: decode recorded sessions into readable action logs,
derive behavioral signals, and rank users for follow-up."""

__version__ = "0.1.0"
