"""WorkChat command-line interface."""
