"""Meeting voice bridge daemon."""
