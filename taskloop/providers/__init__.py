"""Model providers used by the completion service."""
