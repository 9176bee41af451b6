"""Text encoders used for the semantic signal."""
