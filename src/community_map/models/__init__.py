"""Marker and popup data models."""
