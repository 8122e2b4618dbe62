"""Back-end package for the wall application."""
