"""DuckRow: distribute skills and MCP servers from git registries."""
