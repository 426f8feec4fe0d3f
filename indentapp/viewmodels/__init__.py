"""Screen state for the catalogue, cart and history pages."""
