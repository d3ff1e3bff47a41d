"""Shift-assignment rule engine for the hospital network staffing module."""
