"""Domain layer: models shared by services and infrastructure."""
