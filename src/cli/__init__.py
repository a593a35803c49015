"""Operator command line for the land-lease registry."""
