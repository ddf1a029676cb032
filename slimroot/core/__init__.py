"""Resolver, layer builder, assembler, cache and OCI export."""
