"""Infrastructure layer - escaping, framing, settings, logging and channels."""
