"""Command-line interface and console shell."""
