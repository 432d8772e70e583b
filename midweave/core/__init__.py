"""Core utilities: configuration, paths, logging, validation and errors."""
