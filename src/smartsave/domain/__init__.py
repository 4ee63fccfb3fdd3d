"""Domain layer: storage contracts the engine depends on."""
