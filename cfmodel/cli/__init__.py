"""cf-model command-line interface."""
