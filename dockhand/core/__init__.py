"""Core building blocks: shell rendering, validation, parsing, sources and builders"""
