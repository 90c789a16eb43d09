"""labfiles command line."""
