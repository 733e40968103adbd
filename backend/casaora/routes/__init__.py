"""HTTP routes for the Casaora API."""
