"""Adapters over external CLIs and the manifests handed to them."""
