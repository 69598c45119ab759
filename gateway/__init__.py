"""ISI scenario simulation gateway."""
