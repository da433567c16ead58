"""Session replay parsing: node registry, semantic action logger and behavioral signals."""
