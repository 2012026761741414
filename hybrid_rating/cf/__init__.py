"""Neighborhood collaborative filtering over users and over items."""
