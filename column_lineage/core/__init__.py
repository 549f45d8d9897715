"""Lineage resolution engine: plan model, resolver, propagator, walker, sink binder."""
