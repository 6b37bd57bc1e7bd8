"""Flowline: workflow automation service."""
