"""Core compiler: parsing, schema translation, binding and registration."""
