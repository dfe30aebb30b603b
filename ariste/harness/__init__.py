"""Agent harness — the runtime infrastructure that drives a turn (loop, retries)."""
