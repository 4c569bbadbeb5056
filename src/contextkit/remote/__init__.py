"""Binding the store to externally owned objects through string paths."""
