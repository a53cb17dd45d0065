"""Price oracles."""
