"""Small shared helpers used by blueprints."""
