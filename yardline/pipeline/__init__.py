"""Batch extraction pipeline: filter, refine, categorize, extract, audit."""
