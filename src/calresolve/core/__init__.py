"""Cross-cutting infrastructure: structured logging and tracing."""
