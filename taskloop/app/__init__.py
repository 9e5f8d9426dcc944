"""HTTP surface and dependency wiring."""
