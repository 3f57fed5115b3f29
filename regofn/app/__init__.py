"""HTTP host for regofn."""
