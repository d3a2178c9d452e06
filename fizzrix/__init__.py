"""Fizzrix: organize tabletop-RPG modules and run session dashboards."""
