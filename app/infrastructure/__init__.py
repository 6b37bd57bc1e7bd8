"""Infrastructure layer: persistence, engine, capabilities, scheduler."""
