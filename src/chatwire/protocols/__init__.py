"""Protocol layer: tool-protocol wire shapes."""
