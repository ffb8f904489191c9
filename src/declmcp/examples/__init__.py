"""Example declaration files."""
