"""Admission Service for gym checkpoints."""
