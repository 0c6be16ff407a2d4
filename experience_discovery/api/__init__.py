"""HTTP surface of the experience discovery service."""
