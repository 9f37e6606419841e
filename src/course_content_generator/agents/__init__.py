"""Single-purpose LLM agents, one per pipeline stage."""
