"""Timing source and fill simulation."""
