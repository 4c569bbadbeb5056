"""In-memory nodes: items, containers and the seven-component Context."""
