"""Calendar domain primitives: models, recurrence expansion, day indexing, layout and filtering."""
