"""kitsync command-line interface."""
