"""Service layer: permission resolution, authorization and workflows."""
