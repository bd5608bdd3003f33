"""Small helpers shared across bot subsystems."""
