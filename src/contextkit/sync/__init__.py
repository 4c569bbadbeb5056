"""Comparing and reconciling two context trees."""
