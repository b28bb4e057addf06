"""Adapters — concrete document store, design tool and web implementations."""
