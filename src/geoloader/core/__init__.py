"""Format readers, detection and transformation."""
