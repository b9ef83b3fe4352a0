"""HTTP blueprints: records, dashboard and health."""
