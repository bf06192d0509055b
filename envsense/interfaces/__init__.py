"""Transport interfaces for envsense."""
