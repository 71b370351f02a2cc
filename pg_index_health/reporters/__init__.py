"""Report renderers for batch results."""
