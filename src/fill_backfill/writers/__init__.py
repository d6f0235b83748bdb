"""Output sinks for downloaded fills."""
