"""API middleware: request IDs, timing and problem-detail error mapping."""
