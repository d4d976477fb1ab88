"""Read-only JSON endpoints over the build history."""
