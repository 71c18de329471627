"""Configuration, logging and the connect workflow."""
