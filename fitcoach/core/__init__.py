"""Cross-cutting infrastructure: persistence mixins, errors, observability, jobs."""
