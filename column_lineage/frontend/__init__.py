"""SQL front ends: parse statements and build logical plans."""
