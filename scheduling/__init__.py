"""Availability and appointment lifecycle engine."""
